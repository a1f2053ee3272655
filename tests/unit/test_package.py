# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

import unittest
from dataclasses import FrozenInstanceError

from vespakit.exceptions import InvalidArgumentError
from vespakit.package import (
    HNSW,
    ApplicationConfiguration,
    ApplicationPackage,
    Document,
    DocumentSummary,
    Field,
    FieldSet,
    Flag,
    Function,
    ImportedField,
    NamedCollection,
    OnnxModel,
    QueryField,
    QueryProfile,
    QueryProfileType,
    QueryTypeField,
    RankProfile,
    Schema,
    SecondPhaseRanking,
    Setting,
    Struct,
    StructField,
    Summary,
    Validation,
    ValidationID,
    directive,
    merge_by_name,
)


class TestNamedCollection(unittest.TestCase):
    def test_last_write_wins_and_keeps_position(self):
        first = FieldSet(name="a", fields=["x"])
        second = FieldSet(name="b", fields=["y"])
        replacement = FieldSet(name="a", fields=["z"])
        collection = NamedCollection([first, second]).merge(replacement)
        self.assertEqual(list(collection), ["a", "b"])
        self.assertEqual(collection["a"], replacement)
        self.assertEqual(len(collection), 2)

    def test_merge_does_not_modify_original(self):
        collection = NamedCollection([FieldSet(name="a", fields=["x"])])
        merged = collection.merge(FieldSet(name="b", fields=["y"]))
        self.assertEqual(len(collection), 1)
        self.assertEqual(len(merged), 2)

    def test_merge_by_name(self):
        base = {"a": FieldSet(name="a", fields=["x"])}
        merged = merge_by_name(base, [FieldSet(name="a", fields=["y"])])
        self.assertEqual(merged["a"].fields, ("y",))
        self.assertEqual(base["a"].fields, ("x",))


class TestDirectives(unittest.TestCase):
    def test_normalization(self):
        self.assertEqual(directive("exact"), Flag("exact"))
        self.assertEqual(
            directive(("exact-terminator", '"@%"')),
            Setting("exact-terminator", '"@%"'),
        )
        self.assertEqual(directive(Flag("word")), Flag("word"))

    def test_setting_text(self):
        self.assertEqual(Setting("gram-size", 3).as_text, "gram-size: 3")
        self.assertEqual(
            Setting("source", ["title", "abstract"]).as_text, "source: title, abstract"
        )

    def test_invalid_entry(self):
        with self.assertRaises(InvalidArgumentError):
            directive(("a", "b", "c"))
        with self.assertRaises(InvalidArgumentError):
            Flag("")
        with self.assertRaisesRegex(InvalidArgumentError, "^value must be"):
            Setting("bolding", True)
        with self.assertRaisesRegex(InvalidArgumentError, "^match must be a list"):
            StructField(name="first", match=5)


class TestSummary(unittest.TestCase):
    def test_short_form(self):
        self.assertEqual(Summary(None, None, ["dynamic"]).as_lines, ["summary: dynamic"])

    def test_without_fields(self):
        self.assertEqual(
            Summary("artist", "string").as_lines, ["summary artist type string {}"]
        )

    def test_with_fields(self):
        summary = Summary(
            "artist", "string", [("bolding", "on"), ("sources", ["artist", "title"])]
        )
        self.assertEqual(
            summary.as_lines,
            [
                "summary artist type string {",
                "    bolding: on",
                "    sources: artist, title",
                "}",
            ],
        )

    def test_unnamed_with_several_fields(self):
        self.assertEqual(
            Summary(fields=["dynamic", ("bolding", "on")]).as_lines,
            ["summary {", "    dynamic", "    bolding: on", "}"],
        )


class TestHNSW(unittest.TestCase):
    def test_defaults(self):
        hnsw = HNSW()
        self.assertEqual(hnsw.distance_metric, "euclidean")
        self.assertEqual(hnsw.max_links_per_node, 16)
        self.assertEqual(hnsw.neighbors_to_explore_at_insert, 200)

    def test_invalid_links(self):
        with self.assertRaises(InvalidArgumentError):
            HNSW(max_links_per_node="16")


class TestField(unittest.TestCase):
    def test_required_attributes(self):
        with self.assertRaisesRegex(InvalidArgumentError, "name is required"):
            Field(name=None, type="string")
        with self.assertRaisesRegex(InvalidArgumentError, "type is required"):
            Field(name="title", type=None)
        with self.assertRaisesRegex(InvalidArgumentError, "name must be a string"):
            Field(name=1, type="string")

    def test_equality(self):
        self.assertEqual(
            Field(name="title", type="string", indexing=["index", "summary"]),
            Field(name="title", type="string", indexing=("index", "summary")),
        )
        self.assertNotEqual(
            Field(name="title", type="string"), Field(name="body", type="string")
        )

    def test_normalization(self):
        field = Field(
            name="title",
            type="string",
            indexing=["index", "summary"],
            match=["exact", ("exact-terminator", '"@%"')],
        )
        self.assertEqual(field.indexing, ("index", "summary"))
        self.assertEqual(field.indexing_to_text, "index | summary")
        self.assertEqual(
            field.match, (Flag("exact"), Setting("exact-terminator", '"@%"'))
        )
        self.assertIsNone(Field(name="title", type="string").indexing_to_text)

    def test_immutable(self):
        field = Field(name="title", type="string")
        with self.assertRaises(FrozenInstanceError):
            field.name = "body"

    def test_invalid_types(self):
        with self.assertRaises(InvalidArgumentError):
            Field(name="title", type="string", bolding="yes")
        with self.assertRaises(InvalidArgumentError):
            Field(name="title", type="string", weight="200")
        with self.assertRaises(InvalidArgumentError):
            Field(name="title", type="string", ann={"distance_metric": "angular"})
        with self.assertRaises(InvalidArgumentError):
            Field(name="title", type="string", indexing="summary")
        with self.assertRaisesRegex(InvalidArgumentError, "^indexing must be a list"):
            Field(name="title", type="string", indexing=5)
        with self.assertRaisesRegex(InvalidArgumentError, "^attribute must be a list"):
            Field(name="title", type="string", attribute=True)

    def test_add_struct_fields(self):
        field = Field(name="people", type="array<person>", indexing=["summary"])
        updated = field.add_struct_fields(
            StructField("name", indexing=["attribute"]),
            StructField("age", indexing=["attribute"]),
        )
        self.assertEqual(list(updated.struct_fields), ["name", "age"])
        self.assertEqual(len(field.struct_fields), 0)


class TestStruct(unittest.TestCase):
    def test_fields_must_be_a_list(self):
        with self.assertRaisesRegex(InvalidArgumentError, "^fields must be a list"):
            Struct("person", fields=5)
        struct = Struct("person", fields=[Field(name="first", type="string")])
        self.assertEqual(struct.fields, (Field(name="first", type="string"),))


class TestDocument(unittest.TestCase):
    def test_empty(self):
        document = Document()
        self.assertEqual(len(document.fields), 0)
        self.assertEqual(len(document.structs), 0)
        self.assertEqual(document.inherits, ())

    def test_inherits(self):
        self.assertEqual(Document(inherits="context").inherits, ("context",))
        self.assertEqual(Document(inherits=["a", "b"]).inherits, ("a", "b"))

    def test_add_fields(self):
        document = Document()
        title = Field(name="title", type="string")
        updated = document.add_fields(title, Field(name="body", type="string"))
        self.assertEqual(list(updated.fields), ["title", "body"])
        self.assertEqual(updated.fields["title"], title)
        self.assertEqual(len(document.fields), 0)

    def test_duplicate_field_overwrites(self):
        document = Document(
            fields=[
                Field(name="title", type="string"),
                Field(name="title", type="array<string>"),
            ]
        )
        self.assertEqual(len(document.fields), 1)
        self.assertEqual(document.fields["title"].type, "array<string>")

    def test_add_structs(self):
        document = Document().add_structs(
            Struct("person", [Field("name", "string")])
        )
        self.assertEqual(document.structs["person"].fields[0].name, "name")

    def test_rejects_other_types(self):
        with self.assertRaises(InvalidArgumentError):
            Document(fields=["title"])


class TestRankProfile(unittest.TestCase):
    def test_first_phase_required(self):
        with self.assertRaisesRegex(
            InvalidArgumentError, "first_phase ranking expression cannot be None"
        ):
            RankProfile(name="default", first_phase=None)
        with self.assertRaises(InvalidArgumentError):
            RankProfile(name="default", first_phase="  ")

    def test_equality(self):
        self.assertEqual(
            RankProfile(
                name="bm25",
                first_phase="bm25(title)",
                constants={"TOKEN_CLS": 101},
                functions=[Function(name="f", expression="1")],
                second_phase=SecondPhaseRanking(expression="bm25(body)"),
            ),
            RankProfile(
                name="bm25",
                first_phase="bm25(title)",
                constants={"TOKEN_CLS": 101},
                functions=(Function(name="f", expression="1"),),
                second_phase=SecondPhaseRanking(expression="bm25(body)"),
            ),
        )

    def test_second_phase_default_rerank_count(self):
        self.assertEqual(SecondPhaseRanking(expression="x").rerank_count, 100)

    def test_pairs(self):
        with self.assertRaises(InvalidArgumentError):
            RankProfile(name="a", first_phase="1", weight=[("title",)])
        with self.assertRaises(InvalidArgumentError):
            RankProfile(name="a", first_phase="1", rank_type=[("title", "about", "x")])
        with self.assertRaisesRegex(InvalidArgumentError, "^weight entries must be"):
            RankProfile(name="a", first_phase="1", weight=[5])
        with self.assertRaisesRegex(InvalidArgumentError, "^rank_properties must be"):
            RankProfile(name="a", first_phase="1", rank_properties=1)
        profile = RankProfile(
            name="a", first_phase="1", inputs=[("query(w)", "double", "0.5")]
        )
        self.assertEqual(profile.inputs, (("query(w)", "double", "0.5"),))

    def test_function_args(self):
        self.assertEqual(
            Function(name="f", expression="a + b", args=["a", "b"]).args_to_text, "a, b"
        )
        self.assertEqual(Function(name="f", expression="1").args_to_text, "")


class TestOnnxModel(unittest.TestCase):
    def test_derived_paths(self):
        model = OnnxModel(
            model_name="bert",
            model_file_path="models/bert.onnx",
            inputs={"input_ids": "input_ids"},
            outputs={"logits": "logits"},
        )
        self.assertEqual(model.model_file_name, "bert.onnx")
        self.assertEqual(model.file_path, "files/bert.onnx")

    def test_required(self):
        with self.assertRaisesRegex(InvalidArgumentError, "inputs is required"):
            OnnxModel("bert", "bert.onnx", None, {"logits": "logits"})


class TestSchema(unittest.TestCase):
    def setUp(self):
        self.schema = Schema(name="news", document=Document())

    def test_name_must_be_identifier(self):
        with self.assertRaisesRegex(InvalidArgumentError, "must match"):
            Schema(name="my-news", document=Document())

    def test_document_required(self):
        with self.assertRaisesRegex(InvalidArgumentError, "document is required"):
            Schema(name="news", document=None)

    def test_add_fields(self):
        updated = self.schema.add_fields(Field(name="title", type="string"))
        self.assertEqual(list(updated.document.fields), ["title"])
        self.assertEqual(len(self.schema.document.fields), 0)

    def test_duplicate_rank_profile_overwrites(self):
        updated = self.schema.add_rank_profile(
            RankProfile(name="default", first_phase="bm25(title)")
        ).add_rank_profile(RankProfile(name="default", first_phase="nativeRank(title)"))
        self.assertEqual(len(updated.rank_profiles), 1)
        self.assertEqual(
            updated.rank_profiles["default"].first_phase, "nativeRank(title)"
        )

    def test_add_model_prepends(self):
        first = OnnxModel("a", "a.onnx", {"x": "x"}, {"y": "y"})
        second = OnnxModel("b", "b.onnx", {"x": "x"}, {"y": "y"})
        updated = self.schema.add_model(first).add_model(second)
        self.assertEqual([m.model_name for m in updated.models], ["b", "a"])

    def test_add_document_summary_prepends(self):
        updated = self.schema.add_document_summary(
            DocumentSummary(name="first")
        ).add_document_summary(DocumentSummary(name="second"))
        self.assertEqual(
            [s.name for s in updated.document_summaries], ["second", "first"]
        )

    def test_add_field_set_and_imported_field(self):
        updated = self.schema.add_field_set(
            FieldSet(name="default", fields=["title"])
        ).add_imported_field(ImportedField("author_name", "author_ref", "name"))
        self.assertEqual(updated.fieldsets["default"].fields_to_text, "title")
        self.assertEqual(updated.imported_fields["author_name"].field_to_import, "name")

    def test_rejects_other_types(self):
        with self.assertRaises(InvalidArgumentError):
            self.schema.add_rank_profile("default")


class TestQueryProfile(unittest.TestCase):
    def test_defaults(self):
        query_profile = QueryProfile()
        self.assertEqual(query_profile.name, "default")
        self.assertEqual(query_profile.type, "root")
        self.assertEqual(query_profile.fields, ())
        self.assertEqual(QueryProfileType().name, "root")

    def test_add_fields(self):
        query_profile = QueryProfile().add_fields(
            QueryField(name="maxHits", value=100),
            QueryField(name="anotherField", value="string_value"),
        )
        self.assertEqual(
            [f.name for f in query_profile.fields], ["maxHits", "anotherField"]
        )
        query_profile_type = QueryProfileType().add_fields(
            QueryTypeField(name="ranking.features.query(q)", type="tensor<float>(x[3])")
        )
        self.assertEqual(len(query_profile_type.fields), 1)

    def test_value_required(self):
        with self.assertRaisesRegex(InvalidArgumentError, "value is required"):
            QueryField(name="maxHits", value=None)


class TestValidation(unittest.TestCase):
    def test_enum_id(self):
        validation = Validation(ValidationID.indexingChange, until="2026-01-30")
        self.assertEqual(validation.id, "indexing-change")
        self.assertEqual(validation, Validation("indexing-change", "2026-01-30"))

    def test_until_must_be_a_date(self):
        with self.assertRaisesRegex(InvalidArgumentError, "ISO-8601"):
            Validation(ValidationID.fieldTypeChange, until="next week")


class TestApplicationConfiguration(unittest.TestCase):
    def test_nested_value_is_frozen(self):
        configuration = ApplicationConfiguration(
            name="container.handler.observability.application-userdata",
            value={"version": "my-version", "tags": ["a", "b"]},
        )
        self.assertEqual(configuration.value["tags"], ("a", "b"))
        with self.assertRaises(TypeError):
            configuration.value["version"] = "other"

    def test_keys_must_be_xml_names(self):
        with self.assertRaisesRegex(InvalidArgumentError, "^value key must be a valid"):
            ApplicationConfiguration(name="a", value={"a<b": "x"})
        with self.assertRaisesRegex(InvalidArgumentError, "^value.outer key must be"):
            ApplicationConfiguration(name="a", value={"outer": [{"bad key": 1}]})
        with self.assertRaisesRegex(InvalidArgumentError, "^value key must be a string"):
            ApplicationConfiguration(name="a", value={1: "x"})
        configuration = ApplicationConfiguration(
            name="a", value={"_private.setting-1": "x"}
        )
        self.assertEqual(configuration.value["_private.setting-1"], "x")


class TestApplicationPackage(unittest.TestCase):
    def test_defaults(self):
        app_package = ApplicationPackage(name="my_app")
        self.assertEqual(len(app_package.schemas), 1)
        schema = app_package.get_schema()
        self.assertEqual(schema.name, "my_app")
        self.assertEqual(schema.document, Document())
        self.assertEqual(app_package.query_profile, QueryProfile())
        self.assertEqual(app_package.query_profile_type, QueryProfileType())
        self.assertEqual(app_package.configurations, ())
        self.assertEqual(app_package.validations, ())

    def test_disabled_defaults(self):
        app_package = ApplicationPackage(
            name="my_app",
            create_schema_by_default=False,
            create_query_profile_by_default=False,
        )
        self.assertEqual(app_package.schemas, [])
        self.assertIsNone(app_package.query_profile)
        self.assertIsNone(app_package.query_profile_type)

    def test_invalid_name(self):
        with self.assertRaisesRegex(InvalidArgumentError, "must match"):
            ApplicationPackage(name="my-app")

    def test_get_schema(self):
        news = Schema(name="news", document=Document())
        users = Schema(name="users", document=Document())
        app_package = ApplicationPackage(name="my_app", schema=[news, users])
        self.assertEqual(app_package.get_schema("users"), users)
        with self.assertRaises(InvalidArgumentError):
            app_package.get_schema()
        with self.assertRaises(InvalidArgumentError):
            app_package.get_schema("missing")

    def test_add_schema_replaces_by_name(self):
        app_package = ApplicationPackage(name="my_app")
        schema = app_package.get_schema().add_fields(Field(name="title", type="string"))
        updated = app_package.add_schema(schema)
        self.assertEqual(len(updated.schemas), 1)
        self.assertEqual(list(updated.get_schema().document.fields), ["title"])
        self.assertEqual(len(app_package.get_schema().document.fields), 0)

    def test_add_configuration_and_validation(self):
        app_package = (
            ApplicationPackage(name="my_app")
            .add_configuration(ApplicationConfiguration(name="a", value="1"))
            .add_validation(Validation(ValidationID.indexingChange, "2026-01-30"))
        )
        self.assertEqual(len(app_package.configurations), 1)
        self.assertEqual(len(app_package.validations), 1)

    def test_with_query_profile(self):
        query_profile = QueryProfile(fields=[QueryField(name="maxHits", value=10)])
        app_package = ApplicationPackage(name="my_app").with_query_profile(query_profile)
        self.assertEqual(app_package.query_profile, query_profile)

    def test_model_config(self):
        app_package = ApplicationPackage(
            name="my_app", model_ids=["bert"], model_configs={"bert": {"max_len": 128}}
        )
        self.assertEqual(app_package.get_model_config("bert"), {"max_len": 128})
        with self.assertRaises(InvalidArgumentError):
            app_package.get_model_config("t5")
