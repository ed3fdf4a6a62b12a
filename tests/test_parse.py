# tests/test_parse.py
"""
Tests for remark document decoding, filtering and message reconstruction.
"""

import logging

import pytest

from optremarks.errors import DocumentDecodeError, RemarkFileError
from optremarks.model import (
    DEFAULT_KIND_FILTER,
    AnnotatedReference,
    LoadOptions,
    Location,
    PlainText,
)
from optremarks.parse import (
    AnalysisDocument,
    CalleeArg,
    CallerArg,
    MissedDocument,
    OtherArg,
    PassedDocument,
    ReasonArg,
    StringArg,
    UnrecognizedDocument,
    construct_message,
    decode_arg,
    decode_document,
    decode_location,
    filter_location,
    load_remarks_from_file,
    parse_remarks,
    split_documents,
)
from tests.conftest import (
    GVN,
    MALFORMED,
    NEVER_INLINE,
    NO_DEFINITION,
    NO_LOCATION,
    PASSED_AND_ANALYSIS,
    SINGLE_ABSOLUTE,
    UNKNOWN_TAG,
    options_for,
)


class TestSplitDocuments:

    def test_two_documents(self):
        chunks = list(split_documents(NO_DEFINITION + GVN))
        assert len(chunks) == 2
        assert chunks[0].startswith("--- !Missed")
        assert "LoadClobbered" in chunks[1]

    def test_end_marker_is_dropped(self):
        chunks = list(split_documents(NO_DEFINITION))
        assert not any(line.startswith("...") for line in chunks[0].splitlines())

    def test_blank_and_comment_only_chunks_are_skipped(self):
        assert list(split_documents("\n# comment\n\n")) == []
        assert list(split_documents("")) == []

    def test_marker_must_be_at_column_zero(self):
        text = "--- !Missed\nArgs:\n  - String: ' --- x'\n"
        assert len(list(split_documents(text))) == 1


class TestDecodeDocument:

    def test_missed(self):
        doc = decode_document(next(split_documents(NO_DEFINITION)))
        assert isinstance(doc, MissedDocument)
        assert doc.pass_name == "inline"
        assert doc.name == "NoDefinition"
        assert doc.debug_loc == Location("src/main.rs", 7, 5)
        assert [type(a) for a in doc.args] == [CalleeArg, StringArg, CallerArg, StringArg]
        assert doc.args[2].debug_loc == Location("src/main.rs", 6, 0)

    def test_passed_and_analysis(self):
        docs = [decode_document(c) for c in split_documents(PASSED_AND_ANALYSIS)]
        assert isinstance(docs[0], PassedDocument)
        assert isinstance(docs[1], AnalysisDocument)
        assert docs[1].pass_name == "size-info"

    def test_unknown_tag(self):
        doc = decode_document(next(split_documents(UNKNOWN_TAG)))
        assert doc == UnrecognizedDocument("Failure")

    def test_malformed_yaml(self):
        with pytest.raises(DocumentDecodeError):
            decode_document(next(split_documents(MALFORMED)))

    def test_untagged_document(self):
        with pytest.raises(DocumentDecodeError):
            decode_document("Pass: inline\nName: X\n")

    def test_missed_without_function(self):
        with pytest.raises(DocumentDecodeError):
            decode_document("--- !Missed\nPass: inline\nName: X\n")

    def test_args_must_be_a_list(self):
        with pytest.raises(DocumentDecodeError):
            decode_document("--- !Missed\nPass: p\nName: n\nFunction: f\nArgs: 3\n")


class TestDecodeArgs:

    def test_known_shapes(self):
        assert decode_arg({"String": "x"}) == StringArg("x")
        assert decode_arg({"Reason": "too big"}) == ReasonArg("too big")
        assert decode_arg({"Callee": "f"}) == CalleeArg("f", None)

    def test_other_bag_keeps_order_and_drops_non_scalars(self):
        arg = decode_arg({"Cost": "-15", "Nested": {"a": 1}, "Threshold": 487})
        assert arg == OtherArg((("Cost", "-15"), ("Threshold", 487)), None)

    def test_other_bag_with_location(self):
        arg = decode_arg(
            {"ClobberedBy": "call", "DebugLoc": {"File": "a.rs", "Line": 2, "Column": 3}}
        )
        assert arg.values == (("ClobberedBy", "call"),)
        assert arg.debug_loc == Location("a.rs", 2, 3)

    def test_other_bag_with_bad_location(self):
        arg = decode_arg({"Type": "i64", "DebugLoc": "nowhere"})
        assert arg.debug_loc is None

    def test_non_mapping_argument(self):
        with pytest.raises(DocumentDecodeError):
            decode_arg("just text")

    def test_location_defaults(self):
        assert decode_location({"File": "a.rs"}) == Location("a.rs", 0, 0)

    def test_location_rejects_negative(self):
        with pytest.raises(DocumentDecodeError):
            decode_location({"File": "a.rs", "Line": -1})


class TestConstructMessage:

    def test_alternates_plain_and_annotated(self):
        loc = Location("src/main.rs", 6, 0)
        parts = construct_message([
            StringArg("a "),
            CalleeArg("foo", loc),
            StringArg(" b"),
            ReasonArg(" c"),
        ])
        assert parts == (
            PlainText("a "),
            AnnotatedReference("foo", loc),
            PlainText(" b c"),
        )

    def test_callee_without_location_is_plain_and_demangled(self):
        parts = construct_message([
            CalleeArg("_ZN7remarks4main17hc92ae132ef1efa8eE"),
            StringArg(" x"),
        ])
        assert parts == (PlainText("remarks::main x"),)

    def test_one_annotation_per_argument(self):
        loc = Location("src/main.rs", 1, 1)
        parts = construct_message([CalleeArg("f", loc), CalleeArg("f", loc)])
        assert parts == (AnnotatedReference("f", loc), AnnotatedReference("f", loc))

    def test_bag_values_are_concatenated(self):
        parts = construct_message([OtherArg((("A", "x"), ("B", 7), ("C", True)))])
        assert parts == (PlainText("x7true"),)

    def test_empty(self):
        assert construct_message([]) == ()


class TestParseRemarks:

    def test_single_external(self, tmp_path):
        remarks = parse_remarks(
            SINGLE_ABSOLUTE, options_for(tmp_path, include_external=True)
        )
        assert len(remarks) == 1
        remark = remarks[0]
        assert remark.pass_name == "sdagisel"
        assert remark.name == "FastISelFailure"
        assert remark.function.name == "__rust_alloc"
        assert remark.location == Location("/std/src/sys_common/backtrace.rs", 131, 0)
        assert remark.message == (
            PlainText(
                "FastISel missed call:   %3 = tail call ptr @__rdl_alloc(i64 %0, i64 %1)"
                " (in function: __rust_alloc)"
            ),
        )

    def test_no_definition(self, project):
        remarks = parse_remarks(NO_DEFINITION, options_for(project))
        assert len(remarks) == 1
        remark = remarks[0]
        assert remark.function.name == "remarks::main"
        assert remark.location == Location("src/main.rs", 7, 5)
        assert remark.message == (
            PlainText("std::io::stdio::_print will not be inlined into "),
            AnnotatedReference("remarks::main", Location("src/main.rs", 6, 0)),
            PlainText(" because its definition is unavailable"),
        )

    def test_gvn_bag(self, project):
        remarks = parse_remarks(GVN, options_for(project))
        assert len(remarks) == 1
        assert remarks[0].message == (
            PlainText("load of type i64 not eliminated because it is clobbered by "),
            AnnotatedReference("call", Location("src/main.rs", 2, 19)),
        )
        assert remarks[0].function.name.startswith("alloc::raw_vec::RawVec<T,A>")

    def test_without_location_is_discarded(self, tmp_path):
        assert parse_remarks(NO_LOCATION, options_for(tmp_path, include_external=True)) == []

    def test_passed_and_analysis_are_ignored(self, project):
        assert parse_remarks(PASSED_AND_ANALYSIS, options_for(project)) == []

    def test_unknown_tag_does_not_affect_neighbours(self, project, caplog):
        with caplog.at_level(logging.DEBUG, logger="optremarks.parse"):
            remarks = parse_remarks(NO_DEFINITION + UNKNOWN_TAG + GVN, options_for(project))
        assert [r.name for r in remarks] == ["NoDefinition", "LoadClobbered"]
        assert any("unknown tag" in rec.getMessage() for rec in caplog.records)

    def test_malformed_document_does_not_affect_neighbours(self, project):
        remarks = parse_remarks(MALFORMED + NO_DEFINITION, options_for(project))
        assert [r.name for r in remarks] == ["NoDefinition"]

    def test_kind_filter(self, project):
        stream = NEVER_INLINE + NO_DEFINITION
        default = parse_remarks(stream, LoadOptions(source_root=project))
        assert [r.name for r in default] == ["NoDefinition"]
        assert "NeverInline" in DEFAULT_KIND_FILTER

        custom = parse_remarks(stream, options_for(project, excluded_kinds={"NoDefinition"}))
        assert [r.name for r in custom] == ["NeverInline"]

    def test_kind_filter_is_case_sensitive(self, project):
        remarks = parse_remarks(
            NEVER_INLINE, options_for(project, excluded_kinds={"neverinline"})
        )
        assert len(remarks) == 1

    def test_locality_filter(self, tmp_path, project):
        # Source file missing from the (empty) root.
        assert parse_remarks(NO_DEFINITION, options_for(tmp_path / "empty")) == []
        # Absolute path without include_external.
        assert parse_remarks(SINGLE_ABSOLUTE, options_for(project)) == []

    def test_bytes_input(self, project):
        remarks = parse_remarks(NO_DEFINITION.encode("utf-8"), options_for(project))
        assert len(remarks) == 1

    def test_empty_input(self, project):
        assert parse_remarks("", options_for(project)) == []


class TestExternalSourceRoot:

    def test_toolchain_path_is_resolved(self, tmp_path):
        root = tmp_path / "rust-src"
        target = root / "library" / "core" / "src" / "result.rs"
        target.parent.mkdir(parents=True)
        target.write_text("// result\n")
        options = options_for(tmp_path / "project", external_source_root=root)

        loc = Location("/rustc/8ede3aae28fe6e4d52b38157d7bfe0d3bceef225/library/core/src/result.rs", 3, 1)
        resolved = filter_location(loc, options)
        assert resolved == Location(str(target), 3, 1, external=True)

    def test_unresolvable_toolchain_path_is_dropped(self, tmp_path):
        options = options_for(tmp_path, external_source_root=tmp_path / "rust-src")
        loc = Location("/rustc/8ede3aae28fe6e4d/library/missing.rs", 3, 1)
        assert filter_location(loc, options) is None


class TestLoadRemarksFromFile:

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.opt.yaml"
        path.write_bytes(b"")
        assert load_remarks_from_file(path, options_for(tmp_path)) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(RemarkFileError) as info:
            load_remarks_from_file(tmp_path / "nope.opt.yaml", options_for(tmp_path))
        assert info.value.code == "REMARK-1002"

    def test_reads_file(self, project, tmp_path):
        path = tmp_path / "a.opt.yaml"
        path.write_text(NO_DEFINITION + GVN)
        assert len(load_remarks_from_file(path, options_for(project))) == 2
