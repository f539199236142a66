from setuptools import setup, find_packages

setup(
    name="signage-layout-console",
    version="0.1.0",
    description="Layout composition and group synchronization engine for signage device consoles",
    author="Matt Skillman",
    packages=find_packages(include=["src", "src.*"]),
    python_requires=">=3.9",
    install_requires=[
        "PyYAML>=6.0",
        "pyzmq>=25.0",
        "requests>=2.31.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "black>=23.0.0",
            "pylint>=2.17.0",
        ]
    },
)
