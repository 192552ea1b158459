# setup.py

from setuptools import setup, find_packages

setup(
    name="cluster-vm-balancer",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "openstacksdk",
        "pydantic>=2",
        "pydantic-settings>=2.1",
        "requests",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'balance-cluster=cluster_balancer.cli:main',
        ],
    },
    description="Utilization-driven VM migration for compute clusters",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    keywords="cluster virtualization load-balancing migration",
    python_requires=">=3.8",
)
