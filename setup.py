from setuptools import setup, find_packages

setup(
    name="resource-networks",
    version="0.1.0",
    description="Distributed HyperLogLog resource counting and leader election on graphs",
    author="adamfilli",
    packages=find_packages(include=["resourcenetworks", "resourcenetworks.*"]),
    install_requires=[
        "matplotlib",
        "numpy",
        "pandas",
    ],
    extras_require={
        "test": [
            "networkx",
            "pytest",
        ],
    },
    include_package_data=True,
    python_requires=">=3.11",
)
