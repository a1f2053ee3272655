# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

import logging
import os
import zipfile
from io import BytesIO
from pathlib import Path
from shutil import copyfile
from tempfile import TemporaryDirectory
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from vespakit.package import ApplicationPackage

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_NAME = "vespa.zip"
SCHEMAS_DIR = "schemas"
FILES_DIR = "files"
QUERY_PROFILES_DIR = "search/query-profiles"


def _write_text(path: Path, text: str) -> None:
    # Bytes, not text mode, so files match the in-memory rendering on every platform.
    path.write_bytes(text.encode("utf-8"))


def to_files(application_package: "ApplicationPackage", root: Union[str, Path]) -> Path:
    """
    Lay out an application package as a directory tree.

    The tree holds `services.xml`, `validation-overrides.xml`, one `schemas/<name>.sd` per schema,
    the ONNX files of every schema under `files/`, the query profile as
    `search/query-profiles/<name>.xml` and its type as `search/query-profiles/types/<name>.xml`.
    Each of the last two is written only when the package has it.

    Args:
        application_package (ApplicationPackage): Package to export.
        root (str): Directory to export files to. Created when missing.

    Returns:
        Path: The root directory.

    Raises:
        OSError: A directory or file could not be created.
    """
    root = Path(root)
    (root / SCHEMAS_DIR).mkdir(parents=True, exist_ok=True)

    _write_text(root / "services.xml", application_package.services_to_text)
    _write_text(
        root / "validation-overrides.xml", application_package.validations_to_text
    )

    for schema in application_package.schemas:
        _write_text(
            root / SCHEMAS_DIR / "{}.sd".format(schema.name), schema.schema_to_text
        )
        for model in schema.models:
            (root / FILES_DIR).mkdir(exist_ok=True)
            copyfile(model.model_file_path, root / model.file_path)

    query_profiles = root / QUERY_PROFILES_DIR
    if application_package.query_profile:
        query_profiles.mkdir(parents=True, exist_ok=True)
        _write_text(
            query_profiles / "{}.xml".format(application_package.query_profile.name),
            application_package.query_profile_to_text,
        )
    if application_package.query_profile_type:
        (query_profiles / "types").mkdir(parents=True, exist_ok=True)
        _write_text(
            query_profiles
            / "types"
            / "{}.xml".format(application_package.query_profile_type.name),
            application_package.query_profile_type_to_text,
        )

    logger.info("Application package %s written to %s", application_package.name, root)
    return root


def zip_directory(root: Union[str, Path]) -> BytesIO:
    """
    Zip the contents of `root` into an in-memory archive.

    Entries are relative to `root` and added sorted by name.
    """
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError("{} is not a directory".format(root))
    entries = sorted(
        (path.relative_to(root).as_posix(), path)
        for path in root.rglob("*")
        if path.is_file()
    )
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zip_archive:
        for name, path in entries:
            zip_archive.write(path, name)
    buffer.seek(0)
    return buffer


def to_zip(application_package: "ApplicationPackage") -> BytesIO:
    """Return the application package as zipped bytes, to be used in a subsequent deploy."""
    with TemporaryDirectory() as tmp:
        to_files(application_package, tmp)
        return zip_directory(tmp)


def to_zipfile(
    application_package: "ApplicationPackage",
    zfile: Union[str, Path] = DEFAULT_ARCHIVE_NAME,
) -> Path:
    """
    Export the application package as a deployable zip file.

    Args:
        application_package (ApplicationPackage): Package to export.
        zfile (str, optional): Filename to export to. Default is `vespa.zip`.

    Returns:
        Path: The written archive.
    """
    zfile = Path(zfile)
    with open(zfile, "wb") as f:
        f.write(to_zip(application_package).getbuffer().tobytes())
    logger.info("Application package %s archived to %s", application_package.name, os.fspath(zfile))
    return zfile
