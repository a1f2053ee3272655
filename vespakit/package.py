# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from io import BytesIO
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, List, Optional, Tuple, Union

from vespakit import compiler, packager
from vespakit.exceptions import InvalidArgumentError
from vespakit.utils.validation import (
    optional_str,
    require_identifier,
    require_present,
    require_str,
    require_str_items,
    require_xml_name,
)


def _set(instance: object, attribute: str, value: Any) -> None:
    # Normalization inside __post_init__ of frozen dataclasses.
    object.__setattr__(instance, attribute, value)


def _sequence(attribute: str, values: Any, kind: str = "a list") -> Tuple:
    if isinstance(values, (str, bytes, Mapping)):
        raise InvalidArgumentError("{} must be {}, got {!r}".format(attribute, kind, values))
    try:
        return tuple(values)
    except TypeError:
        raise InvalidArgumentError(
            "{} must be {}, got {!r}".format(attribute, kind, values)
        ) from None


def _str_tuple(attribute: str, values: Optional[Iterable[str]]) -> Optional[Tuple[str, ...]]:
    if values is None:
        return None
    values = _sequence(attribute, values, "a list of strings")
    require_str_items(attribute, values)
    return values


def _instances(attribute: str, values: Optional[Iterable], cls: type) -> Tuple:
    values = () if values is None else _sequence(attribute, values)
    for value in values:
        if not isinstance(value, cls):
            raise InvalidArgumentError(
                "{} must only contain {} instances, got {!r}".format(
                    attribute, cls.__name__, value
                )
            )
    return values


def _optional_instance(attribute: str, value: Any, cls: type) -> None:
    if value is not None and not isinstance(value, cls):
        raise InvalidArgumentError(
            "{} must be a {} instance".format(attribute, cls.__name__)
        )


def _optional_int(attribute: str, value: Any) -> None:
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise InvalidArgumentError("{} must be an integer".format(attribute))


def _optional_bool(attribute: str, value: Any) -> None:
    if value is not None and not isinstance(value, bool):
        raise InvalidArgumentError("{} must be a boolean".format(attribute))


def _frozen_mapping(attribute: str, values: Optional[Mapping]) -> Optional[Mapping]:
    if values is None:
        return None
    if not isinstance(values, Mapping):
        raise InvalidArgumentError("{} must be a mapping".format(attribute))
    return MappingProxyType(dict(values))


def _pairs(
    attribute: str, values: Optional[Iterable], max_size: int = 2
) -> Optional[Tuple[Tuple, ...]]:
    if values is None:
        return None
    pairs = tuple(
        _sequence("{} entries".format(attribute), value, "(name, value) pairs")
        for value in _sequence(attribute, values, "a list of (name, value) pairs")
    )
    for pair in pairs:
        if not 2 <= len(pair) <= max_size or not isinstance(pair[0], str):
            raise InvalidArgumentError(
                "{} entries must be (name, value) pairs, got {!r}".format(
                    attribute, pair
                )
            )
    return pairs


def merge_by_name(base: Mapping, items: Iterable) -> "OrderedDict[str, Any]":
    """
    Merge `items` into a copy of `base`, keyed by each item's `name`.

    An item whose name is already present replaces the earlier item (last write wins) and takes
    over its position. `base` is never modified.
    """
    merged = OrderedDict(base)
    for item in items:
        merged[item.name] = item
    return merged


class NamedCollection(Mapping):
    """
    Immutable, insertion-ordered mapping from name to item.

    Duplicate names follow `merge_by_name`: the last item with a given name wins.

    Example:
        ```python
        profiles = NamedCollection([RankProfile("default", "bm25(title)")])
        profiles = profiles.merge(RankProfile("default", "nativeRank(title)"))
        len(profiles)
        1
        ```
    """

    def __init__(self, items: Iterable = ()) -> None:
        self._items = merge_by_name({}, items)

    def merge(self, *items) -> "NamedCollection":
        """Return a new collection with `items` merged in."""
        return NamedCollection(merge_by_name(self._items, items).values())

    def __getitem__(self, name: str):
        return self._items[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return "{0}({1})".format(self.__class__.__name__, repr(list(self.values())))


def _named(attribute: str, values: Union[None, Mapping, Iterable], cls: type) -> NamedCollection:
    if isinstance(values, Mapping):
        values = values.values()
    return NamedCollection(_instances(attribute, values, cls))


@dataclass(frozen=True)
class Flag:
    """A bare directive, such as `exact` inside a match block or `dynamic` inside a summary."""

    name: str

    def __post_init__(self) -> None:
        require_str("name", self.name)

    @property
    def as_text(self) -> str:
        return self.name


@dataclass(frozen=True)
class Setting:
    """
    A `key: value` directive.

    Args:
        key (str): Directive name, e.g. `exact-terminator`.
        value (str | list): A single value, or several values that are rendered comma separated.

    Example:
        ```python
        Setting("exact-terminator", '"@%"').as_text
        'exact-terminator: "@%"'

        Setting("source", ["title", "abstract"]).as_text
        'source: title, abstract'
        ```
    """

    key: str
    value: Union[str, Tuple[str, ...]]

    def __post_init__(self) -> None:
        require_str("key", self.key)
        require_present("value", self.value)
        if isinstance(self.value, bool):
            raise InvalidArgumentError(
                "value must be a string, a number or a list of strings, got {!r}".format(
                    self.value
                )
            )
        if isinstance(self.value, (int, float)):
            _set(self, "value", str(self.value))
        elif not isinstance(self.value, str):
            _set(self, "value", _str_tuple("value", self.value))

    @property
    def as_text(self) -> str:
        value = self.value if isinstance(self.value, str) else ", ".join(self.value)
        return "{}: {}".format(self.key, value)


Directive = Union[Flag, Setting]


def directive(entry: Union[str, Tuple[str, Any], Directive]) -> Directive:
    """
    Normalize a match or summary entry into a `Flag` or a `Setting`.

    Plain strings become flags and two-element sequences become settings.
    """
    if isinstance(entry, (Flag, Setting)):
        return entry
    if isinstance(entry, str):
        return Flag(entry)
    if isinstance(entry, (tuple, list)) and len(entry) == 2:
        return Setting(entry[0], entry[1])
    raise InvalidArgumentError(
        "Expected a string or a (key, value) pair, got {!r}".format(entry)
    )


def _directives(attribute: str, values: Optional[Iterable]) -> Optional[Tuple[Directive, ...]]:
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    return tuple(directive(value) for value in _sequence(attribute, values))


@dataclass(frozen=True)
class Summary:
    """
    Configures a summary field.

    Args:
        name (str, optional): Name of the summary field. Can be `None` when used inside a `Field`,
            which then uses the name of the `Field`.
        type (str, optional): Type of the summary field. Can be `None` when used inside a `Field`.
        fields (list, optional): Summary properties. Plain strings are single properties (like `dynamic`),
            pairs are composite values (like `("source", "title")`).

    Example:
        ```python
        Summary(None, None, ["dynamic"]).as_lines
        ['summary: dynamic']

        Summary("artist", "string").as_lines
        ['summary artist type string {}']

        Summary("artist", "string", [("bolding", "on"), ("sources", "artist")]).as_lines
        ['summary artist type string {', '    bolding: on', '    sources: artist', '}']
        ```
    """

    name: Optional[str] = None
    type: Optional[str] = None
    fields: Optional[Tuple[Directive, ...]] = None

    def __post_init__(self) -> None:
        optional_str("name", self.name)
        optional_str("type", self.type)
        _set(self, "fields", _directives("fields", self.fields))

    @property
    def as_lines(self) -> List[str]:
        """The summary as schema lines, relative to the enclosing block."""
        if (
            self.name is None
            and self.type is None
            and self.fields is not None
            and len(self.fields) == 1
            and isinstance(self.fields[0], Flag)
        ):
            return ["summary: {}".format(self.fields[0].as_text)]

        header = "summary"
        if self.name:
            header += " {}".format(self.name)
        if self.type:
            header += " type {}".format(self.type)
        if not self.fields:
            return [header + " {}"]
        return (
            [header + " {"]
            + ["    " + entry.as_text for entry in self.fields]
            + ["}"]
        )


@dataclass(frozen=True)
class HNSW:
    """
    Parameters of an HNSW index for approximate nearest neighbor search.

    For more information, check the [Vespa documentation](https://docs.vespa.ai/en/approximate-nn-hnsw.html).

    Args:
        distance_metric (str, optional): Metric used to compute the distance between vectors. Default is 'euclidean'.
        max_links_per_node (int, optional): Links per node selected when building the graph. Default is 16.
        neighbors_to_explore_at_insert (int, optional): Neighbors explored when inserting a document. Default is 200.
    """

    distance_metric: str = "euclidean"
    max_links_per_node: int = 16
    neighbors_to_explore_at_insert: int = 200

    def __post_init__(self) -> None:
        require_str("distance_metric", self.distance_metric)
        require_present("max_links_per_node", self.max_links_per_node)
        _optional_int("max_links_per_node", self.max_links_per_node)
        require_present(
            "neighbors_to_explore_at_insert", self.neighbors_to_explore_at_insert
        )
        _optional_int(
            "neighbors_to_explore_at_insert", self.neighbors_to_explore_at_insert
        )


@dataclass(frozen=True)
class StructField:
    """
    Create a struct-field, configuring one member of a struct typed field.

    Check the [Vespa documentation](https://docs.vespa.ai/en/reference/schema-reference.html#struct-field).

    Args:
        name (str): Name of the struct member.
        indexing (list, optional): Indexing statements, joined with ` | `.
        attribute (list, optional): Attribute flags.
        match (list, optional): Match settings, plain strings or (key, value) pairs.
        query_command (list, optional): Query commands.
        summary (Summary, optional): Summary configuration.

    Example:
        ```python
        StructField("first_name", indexing=["attribute"], attribute=["fast-search"])
        ```
    """

    name: str
    indexing: Optional[Tuple[str, ...]] = None
    attribute: Optional[Tuple[str, ...]] = None
    match: Optional[Tuple[Directive, ...]] = None
    query_command: Optional[Tuple[str, ...]] = None
    summary: Optional[Summary] = None

    def __post_init__(self) -> None:
        require_str("name", self.name)
        _set(self, "indexing", _str_tuple("indexing", self.indexing))
        _set(self, "attribute", _str_tuple("attribute", self.attribute))
        _set(self, "match", _directives("match", self.match))
        _set(self, "query_command", _str_tuple("query_command", self.query_command))
        _optional_instance("summary", self.summary, Summary)

    @property
    def indexing_to_text(self) -> Optional[str]:
        if self.indexing:
            return " | ".join(self.indexing)


@dataclass(frozen=True)
class Field:
    """
    Create a field.

    For more detailed information about fields, check the [Vespa documentation](https://docs.vespa.ai/en/reference/schema-reference.html#field).

    Args:
        name (str): Name of the field, unique within its document.
        type (str): Data type of the field.
        indexing (list, optional): Indexing statements. Order matters, they are rendered as `a | b`.
        index (str, optional): Index parameters.
        attribute (list, optional): Attribute flags.
        ann (HNSW, optional): Approximate nearest neighbor configuration.
        match (list, optional): Match settings, plain strings or (key, value) pairs.
        weight (int, optional): Weight of the field, used when calculating rank scores.
        bolding (bool, optional): Highlight matching query terms in the summary.
        summary (Summary, optional): Summary configuration of the field.
        stemming (str, optional): Stemming mode.
        rank (str, optional): Rank setting, e.g. `filter`.
        query_command (list, optional): Query commands.
        struct_fields (list, optional): `StructField`s of a struct typed field.
        is_document_field (bool, optional): False for synthetic fields declared outside the document. Default is True.

    Example:
        ```python
        Field(name="title", type="string", indexing=["index", "summary"], index="enable-bm25")

        Field(
            name="tensor_field",
            type="tensor<float>(x[128])",
            indexing=["attribute"],
            ann=HNSW(distance_metric="angular"),
        )

        Field(name="abstract", type="string", match=["exact", ("exact-terminator", '"@%"')])
        ```
    """

    name: str
    type: str
    indexing: Optional[Tuple[str, ...]] = None
    index: Optional[str] = None
    attribute: Optional[Tuple[str, ...]] = None
    ann: Optional[HNSW] = None
    match: Optional[Tuple[Directive, ...]] = None
    weight: Optional[int] = None
    bolding: Optional[bool] = None
    summary: Optional[Summary] = None
    stemming: Optional[str] = None
    rank: Optional[str] = None
    query_command: Optional[Tuple[str, ...]] = None
    struct_fields: NamedCollection = field(default_factory=NamedCollection)
    is_document_field: bool = True

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_str("type", self.type)
        _set(self, "indexing", _str_tuple("indexing", self.indexing))
        optional_str("index", self.index)
        _set(self, "attribute", _str_tuple("attribute", self.attribute))
        _optional_instance("ann", self.ann, HNSW)
        _set(self, "match", _directives("match", self.match))
        _optional_int("weight", self.weight)
        _optional_bool("bolding", self.bolding)
        _optional_instance("summary", self.summary, Summary)
        optional_str("stemming", self.stemming)
        optional_str("rank", self.rank)
        _set(self, "query_command", _str_tuple("query_command", self.query_command))
        _set(
            self,
            "struct_fields",
            _named("struct_fields", self.struct_fields, StructField),
        )
        _optional_bool("is_document_field", self.is_document_field)

    @property
    def indexing_to_text(self) -> Optional[str]:
        if self.indexing:
            return " | ".join(self.indexing)

    def add_struct_fields(self, *struct_fields: StructField) -> "Field":
        """Return a copy of the field with `struct_fields` merged in by name."""
        _instances("struct_fields", struct_fields, StructField)
        return replace(self, struct_fields=self.struct_fields.merge(*struct_fields))


@dataclass(frozen=True)
class ImportedField:
    """
    Field imported from a referenced (parent) document.

    Useful to implement [parent/child relationships](https://docs.vespa.ai/en/parent-child.html).
    The referenced document and field are not checked to exist.

    Args:
        name (str): Name of the field in this schema.
        reference_field (str): A field of type reference pointing to the document holding the field to import.
        field_to_import (str): Name of the field in the referenced document.
    """

    name: str
    reference_field: str
    field_to_import: str

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_str("reference_field", self.reference_field)
        require_str("field_to_import", self.field_to_import)


@dataclass(frozen=True)
class Struct:
    """
    A struct, a composite type made of fields.

    Check the [Vespa documentation](https://docs.vespa.ai/en/reference/schema-reference.html#struct).
    """

    name: str
    fields: Tuple[Field, ...] = ()

    def __post_init__(self) -> None:
        require_str("name", self.name)
        _set(self, "fields", _instances("fields", self.fields, Field))


@dataclass(frozen=True)
class DocumentSummary:
    """
    Create a document summary.

    Check the [Vespa documentation](https://docs.vespa.ai/en/reference/schema-reference.html#document-summary).

    Args:
        name (str): Name of the document-summary.
        inherits (str, optional): Name of a document-summary to inherit from.
        summary_fields (list, optional): `Summary` objects of this document-summary.
        from_disk (bool, optional): Marks the document-summary as accessing fields on disk.
        omit_summary_features (bool, optional): Omit summary-features from this document-summary.

    Example:
        ```python
        DocumentSummary(
            name="short",
            inherits="default",
            summary_fields=[Summary("title", "string", [("source", "title")])],
        )
        ```
    """

    name: str
    inherits: Optional[str] = None
    summary_fields: Tuple[Summary, ...] = ()
    from_disk: bool = False
    omit_summary_features: bool = False

    def __post_init__(self) -> None:
        require_str("name", self.name)
        optional_str("inherits", self.inherits)
        _set(
            self,
            "summary_fields",
            _instances("summary_fields", self.summary_fields, Summary),
        )
        _optional_bool("from_disk", self.from_disk)
        _optional_bool("omit_summary_features", self.omit_summary_features)


@dataclass(frozen=True)
class Document:
    """
    Create a document, the stored record shape of a schema.

    Check the [Vespa documentation](https://docs.vespa.ai/en/documents.html).

    Args:
        fields (list, optional): `Field` objects, keyed by name. A later field replaces an earlier one with the same name.
        inherits (list, optional): Names of the document types to inherit from. Order is kept.
            A single string is accepted for a single parent.
        structs (list, optional): `Struct` objects, keyed by name.

    Example:
        ```python
        document = Document(inherits="context")
        document = document.add_fields(Field(name="title", type="string"))
        [f.name for f in document.fields.values()]
        ['title']
        ```
    """

    fields: NamedCollection = field(default_factory=NamedCollection)
    inherits: Tuple[str, ...] = ()
    structs: NamedCollection = field(default_factory=NamedCollection)

    def __post_init__(self) -> None:
        _set(self, "fields", _named("fields", self.fields, Field))
        inherits = self.inherits
        if inherits is None:
            inherits = ()
        elif isinstance(inherits, str):
            inherits = (inherits,)
        _set(self, "inherits", _str_tuple("inherits", inherits))
        _set(self, "structs", _named("structs", self.structs, Struct))

    def add_fields(self, *fields: Field) -> "Document":
        """
        Add `Field` objects to the document.

        Args:
            fields (Field): Fields to be added. A field replaces an existing one with the same name.

        Returns:
            Document: A new document with the fields merged in.
        """
        _instances("fields", fields, Field)
        return replace(self, fields=self.fields.merge(*fields))

    def add_structs(self, *structs: Struct) -> "Document":
        """Return a new document with `structs` merged in by name."""
        _instances("structs", structs, Struct)
        return replace(self, structs=self.structs.merge(*structs))


@dataclass(frozen=True)
class FieldSet:
    """
    A named group of fields searched together.

    Example:
        ```python
        FieldSet(name="default", fields=["title", "body"]).fields_to_text
        'title, body'
        ```
    """

    name: str
    fields: Tuple[str, ...]

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_present("fields", self.fields)
        _set(self, "fields", _str_tuple("fields", self.fields))

    @property
    def fields_to_text(self) -> str:
        return ", ".join(self.fields)


@dataclass(frozen=True)
class Function:
    r"""
    Create a rank function.

    Define a named function that can be referenced as a part of the ranking expression,
    or (if having no arguments) as a feature.
    Check the [Vespa documentation](https://docs.vespa.ai/en/reference/schema-reference.html#function-rank).

    Args:
        name (str): Name of the function.
        expression (str): Ranking expression. Multi-line expressions keep their relative indentation when rendered.
        args (list, optional): Argument names.

    Example:
        ```python
        Function(name="myfeature", expression="fieldMatch(bar) + freshness(foo)", args=["foo", "bar"])
        ```
    """

    name: str
    expression: str
    args: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_str("expression", self.expression)
        _set(self, "args", _str_tuple("args", self.args))

    @property
    def args_to_text(self) -> str:
        if self.args is not None:
            return ", ".join(self.args)
        return ""


@dataclass(frozen=True)
class SecondPhaseRanking:
    """
    Second phase ranking, evaluated on the best hits of the first phase.

    Args:
        expression (str): Ranking expression.
        rerank_count (int, optional): Hits re-ranked per content node. Default is 100.
    """

    expression: str
    rerank_count: int = 100

    def __post_init__(self) -> None:
        require_str("expression", self.expression)
        require_present("rerank_count", self.rerank_count)
        _optional_int("rerank_count", self.rerank_count)


@dataclass(frozen=True)
class RankProfile:
    """
    Create a rank profile.

    Rank profiles are used to specify an alternative ranking of the same data for different purposes,
    and to experiment with new rank settings.
    Check the [Vespa documentation](https://docs.vespa.ai/en/reference/schema-reference.html#rank-profile).

    Args:
        name (str): Rank profile name.
        first_phase (str): First phase ranking expression. Required.
        inherits (str, optional): Name of another rank profile in the same schema to inherit from.
        constants (dict, optional): Constants available in ranking expressions.
        functions (list, optional): `Function` objects.
        summary_features (list, optional): Rank features returned with each hit.
        second_phase (SecondPhaseRanking, optional): Second phase configuration.
        weight (list, optional): (field, weight) pairs.
        rank_type (list, optional): (field, rank-type-name) pairs.
        rank_properties (list, optional): (property, value) pairs. Values are rendered double-quoted.
        inputs (list, optional): (name, type) or (name, type, default) tuples declaring query inputs.

    Example:
        ```python
        RankProfile(
            name="bert",
            first_phase="bm25(title) + bm25(body)",
            second_phase=SecondPhaseRanking(expression="sum(onnx(bert).logits)", rerank_count=10),
            inherits="default",
            constants={"TOKEN_CLS": 101},
            functions=[Function(name="doc_length", expression="sum(attribute(doc_token_ids))")],
            summary_features=["doc_length"],
        )
        ```
    """

    name: str
    first_phase: str
    inherits: Optional[str] = None
    constants: Optional[Mapping] = None
    functions: Optional[Tuple[Function, ...]] = None
    summary_features: Optional[Tuple[str, ...]] = None
    second_phase: Optional[SecondPhaseRanking] = None
    weight: Optional[Tuple[Tuple[str, Any], ...]] = None
    rank_type: Optional[Tuple[Tuple[str, Any], ...]] = None
    rank_properties: Optional[Tuple[Tuple[str, Any], ...]] = None
    inputs: Optional[Tuple[Tuple, ...]] = None

    def __post_init__(self) -> None:
        require_str("name", self.name)
        if self.first_phase is None:
            raise InvalidArgumentError("first_phase ranking expression cannot be None")
        if not isinstance(self.first_phase, str):
            raise InvalidArgumentError("first_phase ranking expression must be a string")
        if not self.first_phase.strip():
            raise InvalidArgumentError("first_phase ranking expression cannot be empty")
        optional_str("inherits", self.inherits)
        _set(self, "constants", _frozen_mapping("constants", self.constants))
        if self.functions is not None:
            _set(self, "functions", _instances("functions", self.functions, Function))
        _set(
            self,
            "summary_features",
            _str_tuple("summary_features", self.summary_features),
        )
        _optional_instance("second_phase", self.second_phase, SecondPhaseRanking)
        _set(self, "weight", _pairs("weight", self.weight))
        _set(self, "rank_type", _pairs("rank_type", self.rank_type))
        _set(self, "rank_properties", _pairs("rank_properties", self.rank_properties))
        _set(self, "inputs", _pairs("inputs", self.inputs, max_size=3))


@dataclass(frozen=True)
class OnnxModel:
    """
    Reference an ONNX model used in ranking.

    Check the [Vespa documentation](https://docs.vespa.ai/en/onnx.html).
    `model_file_name` and `file_path` are derived from `model_name` when the model is created;
    the packager copies `model_file_path` to `file_path` inside the application package.

    Args:
        model_name (str): Unique model name, used as id when referencing the model.
        model_file_path (str): Path of the ONNX file on the local disk.
        inputs (dict): Maps ONNX input names to Vespa inputs, e.g. `attribute(field)` or `query(param)`.
        outputs (dict): Maps ONNX output names to the names used in Vespa.

    Example:
        ```python
        model = OnnxModel("bert", "bert.onnx", {"input_ids": "input_ids"}, {"logits": "logits"})
        model.file_path
        'files/bert.onnx'
        ```
    """

    model_name: str
    model_file_path: str
    inputs: Mapping
    outputs: Mapping
    model_file_name: str = field(init=False)
    file_path: str = field(init=False)

    def __post_init__(self) -> None:
        require_str("model_name", self.model_name)
        require_str("model_file_path", self.model_file_path)
        require_present("inputs", self.inputs)
        require_present("outputs", self.outputs)
        _set(self, "inputs", _frozen_mapping("inputs", self.inputs))
        _set(self, "outputs", _frozen_mapping("outputs", self.outputs))
        _set(self, "model_file_name", "{}.onnx".format(self.model_name))
        _set(self, "file_path", "files/{}".format(self.model_file_name))


@dataclass(frozen=True)
class Schema:
    """
    Create a schema.

    Check the [Vespa documentation](https://docs.vespa.ai/en/schemas.html).

    Args:
        name (str): Schema name, also used as document type name. Must match `^[A-Za-z0-9_]+$`.
        document (Document): The schema's document.
        fieldsets (list, optional): `FieldSet` objects, keyed by name.
        rank_profiles (list, optional): `RankProfile` objects, keyed by name.
        models (list, optional): `OnnxModel` objects. `add_model` puts new models first.
        global_document (bool, optional): Copy the documents to all content nodes. Default is False.
        imported_fields (list, optional): `ImportedField` objects, keyed by name.
        document_summaries (list, optional): `DocumentSummary` objects. `add_document_summary` puts new ones first.

    Example:
        ```python
        schema = Schema(name="news", document=Document())
        schema = schema.add_fields(Field(name="title", type="string", indexing=["index", "summary"]))
        schema = schema.add_rank_profile(RankProfile(name="default", first_phase="nativeRank(title)"))
        ```
    """

    name: str
    document: Document
    fieldsets: NamedCollection = field(default_factory=NamedCollection)
    rank_profiles: NamedCollection = field(default_factory=NamedCollection)
    models: Tuple[OnnxModel, ...] = ()
    global_document: bool = False
    imported_fields: NamedCollection = field(default_factory=NamedCollection)
    document_summaries: Tuple[DocumentSummary, ...] = ()

    def __post_init__(self) -> None:
        require_identifier("name", self.name)
        if self.document is None:
            raise InvalidArgumentError("document is required")
        _optional_instance("document", self.document, Document)
        _set(self, "fieldsets", _named("fieldsets", self.fieldsets, FieldSet))
        _set(
            self,
            "rank_profiles",
            _named("rank_profiles", self.rank_profiles, RankProfile),
        )
        _set(self, "models", _instances("models", self.models, OnnxModel))
        _optional_bool("global_document", self.global_document)
        _set(
            self,
            "imported_fields",
            _named("imported_fields", self.imported_fields, ImportedField),
        )
        _set(
            self,
            "document_summaries",
            _instances("document_summaries", self.document_summaries, DocumentSummary),
        )

    def add_fields(self, *fields: Field) -> "Schema":
        """Return a new schema whose document has `fields` merged in."""
        return replace(self, document=self.document.add_fields(*fields))

    def add_field_set(self, *field_sets: FieldSet) -> "Schema":
        _instances("fieldsets", field_sets, FieldSet)
        return replace(self, fieldsets=self.fieldsets.merge(*field_sets))

    def add_rank_profile(self, *rank_profiles: RankProfile) -> "Schema":
        """
        Add `RankProfile`s to the schema.

        A rank profile replaces an existing one with the same name.

        Returns:
            Schema: A new schema with the rank profiles merged in.
        """
        _instances("rank_profiles", rank_profiles, RankProfile)
        return replace(self, rank_profiles=self.rank_profiles.merge(*rank_profiles))

    def add_model(self, *models: OnnxModel) -> "Schema":
        """Return a new schema with `models` in front of the existing ones, most recent first."""
        models = _instances("models", models, OnnxModel)
        return replace(self, models=tuple(reversed(models)) + self.models)

    def add_imported_field(self, *imported_fields: ImportedField) -> "Schema":
        _instances("imported_fields", imported_fields, ImportedField)
        return replace(
            self, imported_fields=self.imported_fields.merge(*imported_fields)
        )

    def add_document_summary(self, *document_summaries: DocumentSummary) -> "Schema":
        """Return a new schema with `document_summaries` in front of the existing ones, most recent first."""
        summaries = _instances("document_summaries", document_summaries, DocumentSummary)
        return replace(
            self,
            document_summaries=tuple(reversed(summaries)) + self.document_summaries,
        )

    @property
    def schema_to_text(self) -> str:
        return compiler.schema_to_text(self)


@dataclass(frozen=True)
class QueryTypeField:
    """
    A field of a `QueryProfileType`.

    Example:
        ```python
        QueryTypeField(name="ranking.features.query(title_bert)", type="tensor<float>(x[768])")
        ```
    """

    name: str
    type: str

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_str("type", self.type)


@dataclass(frozen=True)
class QueryProfileType:
    """
    Create a query profile type.

    Check the [Vespa documentation](https://docs.vespa.ai/en/query-profiles.html#query-profile-types).
    An `ApplicationPackage` comes with a default `QueryProfile` named `default`
    associated with a `QueryProfileType` named `root`.
    """

    fields: Tuple[QueryTypeField, ...] = ()
    name: str = "root"

    def __post_init__(self) -> None:
        require_str("name", self.name)
        _set(self, "fields", _instances("fields", self.fields, QueryTypeField))

    def add_fields(self, *fields: QueryTypeField) -> "QueryProfileType":
        return replace(
            self, fields=self.fields + _instances("fields", fields, QueryTypeField)
        )


@dataclass(frozen=True)
class QueryField:
    """
    A field of a `QueryProfile`.

    Example:
        ```python
        QueryField(name="maxHits", value=1000)
        ```
    """

    name: str
    value: Union[str, int, float]

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_present("value", self.value)
        if not isinstance(self.value, (str, int, float)):
            raise InvalidArgumentError("value must be a string or a number")


@dataclass(frozen=True)
class QueryProfile:
    """
    Create a query profile, a named collection of default query parameters.

    Check the [Vespa documentation](https://docs.vespa.ai/en/query-profiles.html).

    Example:
        ```python
        QueryProfile(fields=[QueryField(name="maxHits", value=1000)])
        ```
    """

    fields: Tuple[QueryField, ...] = ()
    name: str = "default"
    type: str = "root"

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_str("type", self.type)
        _set(self, "fields", _instances("fields", self.fields, QueryField))

    def add_fields(self, *fields: QueryField) -> "QueryProfile":
        """Return a new query profile with `fields` appended, in the given order."""
        return replace(self, fields=self.fields + _instances("fields", fields, QueryField))


def _frozen_config_value(attribute: str, value: Any) -> Any:
    if isinstance(value, Mapping):
        frozen = OrderedDict()
        for key, item in value.items():
            # Keys become element names in services.xml.
            require_xml_name("{} key".format(attribute), key)
            frozen[key] = _frozen_config_value("{}.{}".format(attribute, key), item)
        return MappingProxyType(frozen)
    if isinstance(value, (list, tuple)):
        return tuple(_frozen_config_value(attribute, item) for item in value)
    return value


@dataclass(frozen=True)
class ApplicationConfiguration:
    """
    Generic configuration rendered into the container cluster of services.xml.

    Check the [Config documentation](https://docs.vespa.ai/en/reference/services.html#generic-config).

    Args:
        name (str): Configuration name.
        value (str | dict | list): A scalar, a dict (which may be nested), or a list rendered as `<item>` elements.

    Example:
        ```python
        ApplicationConfiguration(
            name="container.handler.observability.application-userdata",
            value={"version": "my-version"},
        )
        ```
    """

    name: str
    value: Any

    def __post_init__(self) -> None:
        require_str("name", self.name)
        require_present("value", self.value)
        _set(self, "value", _frozen_config_value("value", self.value))

    @property
    def as_lines(self) -> List[str]:
        return compiler.configuration_lines(self)


class ValidationID(Enum):
    """
    Ids accepted in validation-overrides.xml.

    See [ValidationId.java](https://github.com/vespa-engine/vespa/blob/master/config-model-api/src/main/java/com/yahoo/config/application/api/ValidationId.java).
    """

    indexingChange = "indexing-change"
    indexModeChange = "indexing-mode-change"
    fieldTypeChange = "field-type-change"
    tensorTypeChange = "tensor-type-change"
    resourcesReduction = "resources-reduction"
    contentTypeRemoval = "schema-removal"
    contentClusterRemoval = "content-cluster-removal"
    deploymentRemoval = "deployment-removal"
    globalDocumentChange = "global-document-change"
    globalEndpointChange = "global-endpoint-change"
    redundancyIncrease = "redundancy-increase"
    redundancyOne = "redundancy-one"
    certificateRemoval = "certificate-removal"


@dataclass(frozen=True)
class Validation:
    """
    A validation to override when deploying.

    Check the [Vespa documentation](https://docs.vespa.ai/en/reference/validation-overrides.html).

    Args:
        id (ValidationID | str): Id of the validation.
        until (str): Last day the override applies, as an ISO-8601 date, e.g. 2016-01-30.
        comment (str, optional): Explanation of the change, for humans.
    """

    id: Union[ValidationID, str]
    until: str
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.id, ValidationID):
            _set(self, "id", self.id.value)
        require_str("id", self.id)
        require_str("until", self.until)
        try:
            date.fromisoformat(self.until)
        except ValueError:
            raise InvalidArgumentError(
                "until must be an ISO-8601 date, was '{}'".format(self.until)
            ) from None
        optional_str("comment", self.comment)


@dataclass(frozen=True)
class ApplicationPackage:
    """
    Create an application package, the root of the configuration model.

    Args:
        name (str): Application name. Must match `^[A-Za-z0-9_]+$`.
        schema (list, optional): `Schema` objects, keyed by name. If empty, a default schema named after the
            application with an empty document is created, unless `create_schema_by_default` is False.
        query_profile (QueryProfile, optional): Defaults to an empty `default` query profile of type `root`
            unless `create_query_profile_by_default` is False.
        query_profile_type (QueryProfileType, optional): Defaults to an empty `root` query profile type
            unless `create_query_profile_by_default` is False.
        stateless_model_evaluation (bool, optional): Enable stateless model evaluation. Default is False.
        create_schema_by_default (bool, optional): Default is True.
        create_query_profile_by_default (bool, optional): Default is True.
        configurations (list, optional): `ApplicationConfiguration` objects for services.xml.
        validations (list, optional): `Validation` objects for validation-overrides.xml.
        model_ids (list, optional): Ids of models evaluated by the application.
        model_configs (dict, optional): Model configuration keyed by model id.

    Example:
        ```python
        app_package = ApplicationPackage(name="my_app")
        app_package.get_schema().name
        'my_app'
        ```
    """

    name: str
    schema: NamedCollection = field(default_factory=NamedCollection)
    query_profile: Optional[QueryProfile] = None
    query_profile_type: Optional[QueryProfileType] = None
    stateless_model_evaluation: bool = False
    create_schema_by_default: bool = True
    create_query_profile_by_default: bool = True
    configurations: Tuple[ApplicationConfiguration, ...] = ()
    validations: Tuple[Validation, ...] = ()
    model_ids: Tuple[str, ...] = ()
    model_configs: Mapping = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_identifier("name", self.name)
        _optional_bool("create_schema_by_default", self.create_schema_by_default)
        _optional_bool(
            "create_query_profile_by_default", self.create_query_profile_by_default
        )
        schemas = _named("schema", self.schema, Schema)
        if not schemas and self.create_schema_by_default:
            schemas = NamedCollection([Schema(name=self.name, document=Document())])
        _set(self, "schema", schemas)

        _optional_instance("query_profile", self.query_profile, QueryProfile)
        _optional_instance(
            "query_profile_type", self.query_profile_type, QueryProfileType
        )
        if self.query_profile is None and self.create_query_profile_by_default:
            _set(self, "query_profile", QueryProfile())
        if self.query_profile_type is None and self.create_query_profile_by_default:
            _set(self, "query_profile_type", QueryProfileType())

        _optional_bool("stateless_model_evaluation", self.stateless_model_evaluation)
        _set(
            self,
            "configurations",
            _instances("configurations", self.configurations, ApplicationConfiguration),
        )
        _set(self, "validations", _instances("validations", self.validations, Validation))
        _set(self, "model_ids", _str_tuple("model_ids", self.model_ids or ()))
        _set(self, "model_configs", _frozen_mapping("model_configs", self.model_configs or {}))

    @property
    def schemas(self) -> List[Schema]:
        return list(self.schema.values())

    def get_schema(self, name: Optional[str] = None) -> Schema:
        """
        Get a schema by name.

        Args:
            name (str, optional): Schema name. May be omitted when the package has exactly one schema.

        Raises:
            InvalidArgumentError: No name given and the package does not have exactly one schema,
                or no schema with the given name.
        """
        if name is None:
            if len(self.schema) != 1:
                raise InvalidArgumentError(
                    "Application has {} schemas, specify the name argument.".format(
                        len(self.schema)
                    )
                )
            return self.schemas[0]
        try:
            return self.schema[name]
        except KeyError:
            raise InvalidArgumentError(
                "Schema named {} not defined in the application package.".format(name)
            ) from None

    def add_schema(self, *schemas: Schema) -> "ApplicationPackage":
        """
        Add `Schema`s to the application package.

        A schema replaces an existing one with the same name, which is also how an
        edited schema is put back into the package.

        Returns:
            ApplicationPackage: A new application package.
        """
        _instances("schema", schemas, Schema)
        return replace(self, schema=self.schema.merge(*schemas))

    def add_configuration(
        self, *configurations: ApplicationConfiguration
    ) -> "ApplicationPackage":
        return replace(self, configurations=self.configurations + tuple(configurations))

    def add_validation(self, *validations: Validation) -> "ApplicationPackage":
        return replace(self, validations=self.validations + tuple(validations))

    def with_query_profile(self, query_profile: QueryProfile) -> "ApplicationPackage":
        return replace(self, query_profile=query_profile)

    def with_query_profile_type(
        self, query_profile_type: QueryProfileType
    ) -> "ApplicationPackage":
        return replace(self, query_profile_type=query_profile_type)

    def get_model_config(self, model_id: str) -> Any:
        try:
            return self.model_configs[model_id]
        except KeyError:
            raise InvalidArgumentError(
                "Model named {} not defined in the application package.".format(
                    model_id
                )
            ) from None

    @property
    def services_to_text(self) -> str:
        return compiler.services_to_text(self)

    @property
    def query_profile_to_text(self) -> str:
        return compiler.query_profile_to_text(self.query_profile)

    @property
    def query_profile_type_to_text(self) -> str:
        return compiler.query_profile_type_to_text(self.query_profile_type)

    @property
    def validations_to_text(self) -> str:
        return compiler.validations_to_text(self.validations)

    def to_files(self, root: Union[str, Path]) -> Path:
        """
        Export the application package as a directory tree.

        Args:
            root (str): Directory to export files to. Created when missing.

        Returns:
            Path: The root directory.
        """
        return packager.to_files(self, root)

    def to_zip(self) -> BytesIO:
        """Return the application package as zipped bytes, to be used in a subsequent deploy."""
        return packager.to_zip(self)

    def to_zipfile(self, zfile: Union[str, Path] = packager.DEFAULT_ARCHIVE_NAME) -> Path:
        """
        Export the application package as a deployable zip file.

        Args:
            zfile (str, optional): Filename to export to. Default is `vespa.zip`.
        """
        return packager.to_zipfile(self, zfile)
