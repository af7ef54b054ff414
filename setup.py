"""Setup script for the tunnel forwarder."""

from setuptools import setup, find_packages


requires = [
    "attrs>=19.1.0",
    "blinker>=1.4",
    "click>=6.2",
    "colorlog>=6.0.0",
    "h11>=0.12.0",
    "python-dotenv>=0.10.3",
    "trio>=0.23.0",
    "trio-util>=0.7.0",
]

__version__ = None
exec(open("src/tunnelforward/version.py").read())

setup(
    name="tunnelforward",
    version=__version__,
    packages=find_packages("src"),
    package_dir={"": "src"},
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=requires,
    extras_require={"test": ["pytest>=6.0", "pytest-trio>=0.7.0", "trustme>=0.9.0"]},
    setup_requires=[],
    entry_points={"console_scripts": ["tunnelforward = tunnelforward.launcher:start"]},
)
