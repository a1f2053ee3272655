# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

import os
import unittest
import zipfile
from pathlib import Path
from tempfile import TemporaryDirectory

from vespakit import packager
from vespakit.package import (
    ApplicationPackage,
    Document,
    Field,
    OnnxModel,
    QueryField,
    QueryProfile,
    QueryProfileType,
    QueryTypeField,
    RankProfile,
    Schema,
)


class TestPackager(unittest.TestCase):
    def setUp(self):
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp = Path(tmp.name)

        model_file = self.tmp / "bert.onnx"
        model_file.write_bytes(b"onnx model bytes")
        schema = Schema(
            name="news",
            document=Document(
                fields=[
                    Field(name="title", type="string", indexing=["index", "summary"])
                ]
            ),
            rank_profiles=[RankProfile(name="default", first_phase="nativeRank(title)")],
            models=[
                OnnxModel(
                    "bert",
                    str(model_file),
                    {"input_ids": "input_ids"},
                    {"logits": "logits"},
                )
            ],
        )
        self.app_package = ApplicationPackage(
            name="news",
            schema=[schema],
            query_profile=QueryProfile(fields=[QueryField(name="maxHits", value=100)]),
        )

    def test_to_files(self):
        root = self.app_package.to_files(self.tmp / "app")
        self.assertEqual(root, self.tmp / "app")
        self.assertEqual(
            (root / "services.xml").read_bytes(),
            self.app_package.services_to_text.encode("utf-8"),
        )
        self.assertEqual(
            (root / "validation-overrides.xml").read_bytes(),
            self.app_package.validations_to_text.encode("utf-8"),
        )
        self.assertEqual(
            (root / "schemas" / "news.sd").read_bytes(),
            self.app_package.get_schema().schema_to_text.encode("utf-8"),
        )
        self.assertEqual(
            (root / "search" / "query-profiles" / "default.xml").read_bytes(),
            self.app_package.query_profile_to_text.encode("utf-8"),
        )
        self.assertEqual(
            (root / "search" / "query-profiles" / "types" / "root.xml").read_bytes(),
            self.app_package.query_profile_type_to_text.encode("utf-8"),
        )
        self.assertEqual(
            (root / "files" / "bert.onnx").read_bytes(), b"onnx model bytes"
        )

    def test_no_query_profile(self):
        app_package = ApplicationPackage(
            name="news", create_query_profile_by_default=False
        )
        root = app_package.to_files(self.tmp / "app")
        self.assertFalse((root / "search").exists())
        self.assertTrue((root / "schemas" / "news.sd").exists())

    def test_query_profile_files_are_named_after_profiles(self):
        app_package = ApplicationPackage(
            name="news",
            query_profile=QueryProfile(name="custom", type="custom_type"),
            query_profile_type=QueryProfileType(name="custom_type"),
        )
        root = app_package.to_files(self.tmp / "app")
        query_profiles = root / "search" / "query-profiles"
        self.assertEqual(
            (query_profiles / "custom.xml").read_bytes(),
            app_package.query_profile_to_text.encode("utf-8"),
        )
        self.assertTrue((query_profiles / "types" / "custom_type.xml").exists())
        self.assertFalse((query_profiles / "default.xml").exists())
        self.assertFalse((query_profiles / "types" / "root.xml").exists())

    def test_query_profile_type_without_query_profile(self):
        app_package = ApplicationPackage(
            name="news",
            create_query_profile_by_default=False,
            query_profile_type=QueryProfileType(
                fields=[
                    QueryTypeField(
                        name="ranking.features.query(w)", type="tensor<float>(x[2])"
                    )
                ]
            ),
        )
        root = app_package.to_files(self.tmp / "app")
        query_profiles = root / "search" / "query-profiles"
        self.assertEqual(
            (query_profiles / "types" / "root.xml").read_bytes(),
            app_package.query_profile_type_to_text.encode("utf-8"),
        )
        self.assertEqual(os.listdir(query_profiles), ["types"])

    def test_query_profile_without_type(self):
        app_package = ApplicationPackage(
            name="news",
            create_query_profile_by_default=False,
            query_profile=QueryProfile(),
        )
        root = app_package.to_files(self.tmp / "app")
        query_profiles = root / "search" / "query-profiles"
        self.assertTrue((query_profiles / "default.xml").exists())
        self.assertFalse((query_profiles / "types").exists())

    def test_to_zip_matches_rendering(self):
        with zipfile.ZipFile(self.app_package.to_zip()) as archive:
            names = archive.namelist()
            self.assertEqual(names, sorted(names))
            self.assertEqual(
                set(names),
                {
                    "files/bert.onnx",
                    "schemas/news.sd",
                    "search/query-profiles/default.xml",
                    "search/query-profiles/types/root.xml",
                    "services.xml",
                    "validation-overrides.xml",
                },
            )
            self.assertEqual(
                archive.read("services.xml"),
                self.app_package.services_to_text.encode("utf-8"),
            )
            self.assertEqual(
                archive.read("schemas/news.sd"),
                self.app_package.get_schema().schema_to_text.encode("utf-8"),
            )

    def test_to_zipfile(self):
        zfile = self.app_package.to_zipfile(self.tmp / "app.zip")
        with zipfile.ZipFile(zfile) as archive:
            self.assertIn("services.xml", archive.namelist())

    def test_to_zipfile_default_name(self):
        self.assertEqual(packager.DEFAULT_ARCHIVE_NAME, "vespa.zip")
        cwd = os.getcwd()
        os.chdir(self.tmp)
        self.addCleanup(os.chdir, cwd)
        zfile = self.app_package.to_zipfile()
        self.assertEqual(zfile, Path("vespa.zip"))
        self.assertTrue((self.tmp / "vespa.zip").exists())

    def test_zip_directory(self):
        root = self.tmp / "app"
        (root / "schemas").mkdir(parents=True)
        (root / "schemas" / "a.sd").write_bytes(b"schema a {}")
        (root / "services.xml").write_bytes(b"<services/>")
        with zipfile.ZipFile(packager.zip_directory(root)) as archive:
            self.assertEqual(archive.namelist(), ["schemas/a.sd", "services.xml"])
            self.assertEqual(archive.read("schemas/a.sd"), b"schema a {}")

    def test_zip_directory_requires_directory(self):
        with self.assertRaises(NotADirectoryError):
            packager.zip_directory(self.tmp / "missing")

    def test_missing_model_file_aborts(self):
        schema = Schema(
            name="news",
            document=Document(),
            models=[OnnxModel("t5", str(self.tmp / "t5.onnx"), {"a": "a"}, {"b": "b"})],
        )
        app_package = ApplicationPackage(name="news", schema=[schema])
        with self.assertRaises(FileNotFoundError):
            app_package.to_files(self.tmp / "app")
