from setuptools import find_packages, setup

setup(
    name="vault-kube-helpers",
    version="0.1.0",
    license="Apache License 2.0",

    python_requires=">=3.11",
    description="Kubernetes authentication with token persistence and "
                "version agnostic KV access for HashiCorp Vault.",

    packages=find_packages(exclude=("tests", "tests.*")),

    install_requires=[
        "hvac>=2.0.0,<3.0.0",
        "requests>=2.31.0,<3.0.0",
        "Click>=8.0,<9.0",
        "structlog>=24.1.0",
        "pydantic>=2.5,<3.0",
    ],

    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-mock>=3.12",
        ],
    },

    test_suite="tests",

    classifiers=[
        'Development Status :: 4 - Beta',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
    ],
    entry_points={
        'console_scripts': [
            'vault-kube-login = vault_helpers.cli:login',
        ],
    },
)
