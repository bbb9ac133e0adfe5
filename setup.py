# setup.py

from setuptools import setup, find_packages

setup(
    name="fleet-aggregator",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        'console_scripts': [
            'fleet-aggregator=fleet_aggregator.cli:main',
        ],
    },
    author="Your Name",
    author_email="your.email@example.com",
    description="Node health and capacity accounting for game server hosting fleets",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    keywords="game-server hosting fleet capacity placement monitoring",
    python_requires=">=3.9",
)
