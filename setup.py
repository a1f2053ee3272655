import os
import setuptools


def get_target_version():
    vespakit_version = os.environ.get("VESPAKIT_VERSION", 0.1)
    build_nr = os.environ.get("SD_EVENT_ID", "0+dev")
    return "{}.{}".format(vespakit_version, build_nr)


min_python = "3.8"

setuptools.setup(
    name="vespakit",
    version=get_target_version(),
    description="Build, package and deploy Vespa application packages from Python",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    keywords="vespa, search engine, application package, schema",
    classifiers=[
        "License :: OSI Approved :: Apache Software License",
    ],
    packages=setuptools.find_packages(include=["vespakit", "vespakit.*"]),
    include_package_data=True,
    install_requires=[
        "requests",
        "docker",
        "jinja2",
        "markupsafe",
        "tenacity",
    ],
    extras_require={
        "dev": [
            "pytest",
            "requests-mock",
        ],
    },
    python_requires=">={}".format(min_python),
    zip_safe=False,
    package_data={"vespakit": ["py.typed", "templates/*.xml"]},
)
