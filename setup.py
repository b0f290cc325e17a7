from setuptools import setup, find_packages


setup(
    name="asar",
    version="0.3.0",
    packages=find_packages(include=["asar", "asar.*"]),
    description="Read and write Electron asar archives with per-block SHA-256 integrity.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "asar=asar.cli:main",
        ]
    },
)
