from setuptools import find_namespace_packages, setup

setup(
    name="fem-fsi",
    version="0.1.0",
    description="Partitioned fluid-structure interaction with a hyperelastic Newton-Raphson solid",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["fem_fsi*"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "scipy",
        "pyyaml",
        "meshio",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["fem-fsi=fem_fsi.cli.run_fsi:main"]},
)
