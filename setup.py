from setuptools import setup, find_packages

setup(
    name="trackml_parset",
    version="0.1.0",
    description="Range-aware track parameter sets with covariance, projectors and residuals",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        # Runtime dependencies
        "numpy",
        "numba",
        "orjson",
    ],
    extras_require={
        # Developer extras
        "dev": [
            "pytest",
            "black",
            "mypy",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
