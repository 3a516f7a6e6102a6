from setuptools import setup, find_packages

setup(
    name="LMEPower",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "pandas",
        "matplotlib",
        "scipy",
        "statsmodels",
        "joblib",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    author="Paweł Lenartowicz",
    description="Monte Carlo Power Analysis for Linear Mixed-Effects Models",
)
