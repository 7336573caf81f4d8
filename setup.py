from setuptools import setup, find_packages

setup(
    name="miniftpd",
    version="0.1.0",
    packages=find_packages(),
    py_modules=["main"],
    python_requires=">=3.8",
    install_requires=[
        "SQLAlchemy>=2.0.27",
        "python-dotenv>=1.0.1",
        "rich>=13.7.0",
    ],
    entry_points={
        "console_scripts": [
            "miniftpd=main:main",
        ],
    },
)
