import setuptools # type: ignore

setuptools.setup(
    name="eventforge",
    version="0.1.0",
    description="Procedural RPG event generation: templates, rules, markov flavor text, event chains and relationships.",
    packages=setuptools.find_packages(where="src"),
    package_dir={'': 'src'},

    package_data={
        'eventforge': ['py.typed'],
        'eventforge.data': ['*'],
    },
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    install_requires=[
        "numpy",
        "toml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires='>=3.9',
)
