# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

"""
Render the configuration model into the artifacts read by Vespa.

Schema (.sd) text is produced by one function per syntactic block, each returning a list of lines
relative to its enclosing block. XML artifacts are rendered from the jinja2 templates shipped in
`vespakit/templates`.
"""

from collections.abc import Mapping
from textwrap import dedent
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup, escape

if TYPE_CHECKING:
    from vespakit.package import (
        ApplicationConfiguration,
        ApplicationPackage,
        Document,
        DocumentSummary,
        Field,
        FieldSet,
        Function,
        ImportedField,
        OnnxModel,
        QueryProfile,
        QueryProfileType,
        RankProfile,
        Schema,
        Struct,
        StructField,
        Validation,
    )

INDENT = " " * 4


def indent(lines: Iterable[str], depth: int = 1) -> List[str]:
    return [INDENT * depth + line for line in lines]


def block(header: str, body: Sequence[str]) -> List[str]:
    """Wrap `body` in `header { ... }`. An empty body still gets its own closing line."""
    return [header + " {"] + indent(body) + ["}"]


def _with_inherits(header: str, inherits: Optional[str]) -> str:
    if inherits:
        return "{} inherits {}".format(header, inherits)
    return header


def _expression_lines(expression: str) -> List[str]:
    return dedent(expression).strip("\n").rstrip().split("\n")


def struct_field_lines(struct_field: "StructField") -> List[str]:
    body = []
    if struct_field.indexing:
        body.append("indexing: {}".format(struct_field.indexing_to_text))
    if struct_field.attribute:
        body += block("attribute", struct_field.attribute)
    if struct_field.match:
        body += block("match", [entry.as_text for entry in struct_field.match])
    if struct_field.summary:
        body += struct_field.summary.as_lines
    for command in struct_field.query_command or ():
        body.append("query-command: {}".format(command))
    return block("struct-field {}".format(struct_field.name), body)


def field_lines(field: "Field", nested: bool = True) -> List[str]:
    """
    Render a field block.

    Args:
        field (Field): Field to render.
        nested (bool, optional): Render the field's struct-fields. False for fields inside a struct.
    """
    body = []
    if field.indexing:
        body.append("indexing: {}".format(field.indexing_to_text))
    if field.index:
        body.append("index: {}".format(field.index))
    if field.ann or field.attribute:
        attribute = []
        if field.ann:
            attribute.append("distance-metric: {}".format(field.ann.distance_metric))
        attribute.extend(field.attribute or ())
        body += block("attribute", attribute)
    if field.ann:
        body += block(
            "index",
            block(
                "hnsw",
                [
                    "max-links-per-node: {}".format(field.ann.max_links_per_node),
                    "neighbors-to-explore-at-insert: {}".format(
                        field.ann.neighbors_to_explore_at_insert
                    ),
                ],
            ),
        )
    if field.match:
        body += block("match", [entry.as_text for entry in field.match])
    if field.weight is not None:
        body.append("weight: {}".format(field.weight))
    if field.bolding:
        body.append("bolding: on")
    if field.summary:
        body += field.summary.as_lines
    if field.stemming:
        body.append("stemming: {}".format(field.stemming))
    if field.rank:
        body.append("rank: {}".format(field.rank))
    for command in field.query_command or ():
        body.append("query-command: {}".format(command))
    if nested:
        for struct_field in field.struct_fields.values():
            body += struct_field_lines(struct_field)
    return block("field {} type {}".format(field.name, field.type), body)


def struct_lines(struct: "Struct") -> List[str]:
    body = []
    for field in struct.fields:
        body += field_lines(field, nested=False)
    return block("struct {}".format(struct.name), body)


def document_lines(name: str, document: "Document") -> List[str]:
    header = "document {}".format(name)
    if document.inherits:
        header += " inherits {}".format(", ".join(document.inherits))
    body = []
    for field in document.fields.values():
        if field.is_document_field:
            body += field_lines(field)
    for struct in document.structs.values():
        body += struct_lines(struct)
    return block(header, body)


def imported_field_lines(imported_field: "ImportedField") -> List[str]:
    return [
        "import field {}.{} as {} {{}}".format(
            imported_field.reference_field,
            imported_field.field_to_import,
            imported_field.name,
        )
    ]


def fieldset_lines(fieldset: "FieldSet") -> List[str]:
    return block(
        "fieldset {}".format(fieldset.name),
        ["fields: {}".format(fieldset.fields_to_text)],
    )


def onnx_model_lines(model: "OnnxModel") -> List[str]:
    body = ["file: {}".format(model.file_path)]
    body += ["input {}: {}".format(k, v) for k, v in model.inputs.items()]
    body += ["output {}: {}".format(k, v) for k, v in model.outputs.items()]
    return block("onnx-model {}".format(model.model_name), body)


def function_lines(function: "Function") -> List[str]:
    return block(
        "function {}({})".format(function.name, function.args_to_text),
        block("expression", _expression_lines(function.expression)),
    )


def _input_line(rank_input: tuple) -> str:
    line = "{} {}".format(rank_input[0], rank_input[1])
    if len(rank_input) > 2 and rank_input[2] is not None:
        line += ": {}".format(rank_input[2])
    return line


def rank_profile_lines(rank_profile: "RankProfile") -> List[str]:
    body = []
    if rank_profile.constants:
        body += block(
            "constants",
            ["{}: {}".format(k, v) for k, v in rank_profile.constants.items()],
        )
    if rank_profile.inputs:
        body += block("inputs", [_input_line(i) for i in rank_profile.inputs])
    for function in rank_profile.functions or ():
        body += function_lines(function)
    body += block(
        "first-phase",
        block("expression", _expression_lines(rank_profile.first_phase)),
    )
    if rank_profile.second_phase:
        body += block(
            "second-phase",
            block("expression", _expression_lines(rank_profile.second_phase.expression))
            + ["rerank-count: {}".format(rank_profile.second_phase.rerank_count)],
        )
    if rank_profile.summary_features:
        body += block("summary-features", rank_profile.summary_features)
    for field_name, weight in rank_profile.weight or ():
        body.append("weight {}: {}".format(field_name, weight))
    for field_name, rank_type in rank_profile.rank_type or ():
        body.append("rank-type {}: {}".format(field_name, rank_type))
    if rank_profile.rank_properties:
        body += block(
            "rank-properties",
            ['{}: "{}"'.format(k, v) for k, v in rank_profile.rank_properties],
        )
    return block(
        _with_inherits("rank-profile {}".format(rank_profile.name), rank_profile.inherits),
        body,
    )


def document_summary_lines(document_summary: "DocumentSummary") -> List[str]:
    body = []
    for summary in document_summary.summary_fields:
        body += summary.as_lines
    if document_summary.from_disk:
        body.append("from-disk")
    if document_summary.omit_summary_features:
        body.append("omit-summary-features")
    return block(
        _with_inherits(
            "document-summary {}".format(document_summary.name),
            document_summary.inherits,
        ),
        body,
    )


def schema_lines(schema: "Schema") -> List[str]:
    body = document_lines(schema.name, schema.document)
    for field in schema.document.fields.values():
        if not field.is_document_field:
            body += field_lines(field)
    for imported_field in schema.imported_fields.values():
        body += imported_field_lines(imported_field)
    for fieldset in schema.fieldsets.values():
        body += fieldset_lines(fieldset)
    for model in schema.models:
        body += onnx_model_lines(model)
    for rank_profile in schema.rank_profiles.values():
        body += rank_profile_lines(rank_profile)
    for document_summary in schema.document_summaries:
        body += document_summary_lines(document_summary)
    return block("schema {}".format(schema.name), body)


def schema_to_text(schema: "Schema") -> str:
    """
    Render a schema as the text of a `.sd` file.

    Example:
        ```python
        print(schema_to_text(Schema(name="S", document=Document())))
        schema S {
            document S {
            }
        }
        ```
    """
    return "\n".join(schema_lines(schema))


def _config_element_lines(tag: str, value: Any) -> List[str]:
    if isinstance(value, Mapping):
        children = []
        for key, item in value.items():
            children += _config_element_lines(key, item)
        return ["<{}>".format(tag)] + indent(children) + ["</{}>".format(tag)]
    if isinstance(value, (list, tuple)):
        children = []
        for item in value:
            children += _config_element_lines("item", item)
        return ["<{}>".format(tag)] + indent(children) + ["</{}>".format(tag)]
    if isinstance(value, bool):
        value = str(value).lower()
    return ["<{0}>{1}</{0}>".format(tag, escape(value))]


def configuration_lines(configuration: "ApplicationConfiguration") -> List[Markup]:
    """
    Render a generic configuration as `<config>` XML lines.

    Mappings become nested elements, sequences become `<item>` elements and scalars become text.
    Values are escaped, the returned lines are safe markup.
    """
    lines = _config_element_lines("config", configuration.value)
    lines[0] = lines[0].replace(
        "<config>", '<config name="{}">'.format(escape(configuration.name)), 1
    )
    return [Markup(line) for line in lines]


def _environment() -> Environment:
    env = Environment(
        loader=PackageLoader("vespakit", "templates"),
        autoescape=select_autoescape(
            disabled_extensions=("txt",),
            default_for_string=True,
            default=True,
        ),
    )
    env.trim_blocks = True
    env.lstrip_blocks = True
    return env


def services_to_text(application_package: "ApplicationPackage") -> str:
    template = _environment().get_template("services.xml")
    return template.render(
        application_name=application_package.name,
        schemas=application_package.schemas,
        configurations=[
            configuration_lines(c) for c in application_package.configurations
        ],
        stateless_model_evaluation=application_package.stateless_model_evaluation,
    )


def query_profile_to_text(query_profile: "QueryProfile") -> str:
    template = _environment().get_template("query_profile.xml")
    return template.render(query_profile=query_profile)


def query_profile_type_to_text(query_profile_type: "QueryProfileType") -> str:
    template = _environment().get_template("query_profile_type.xml")
    return template.render(query_profile_type=query_profile_type)


def validations_to_text(validations: Sequence["Validation"]) -> str:
    template = _environment().get_template("validation-overrides.xml")
    return template.render(validations=validations)
