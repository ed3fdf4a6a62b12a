# tests/test_index.py
"""
Tests for grouping remarks by source file.
"""

from optremarks.index import FileIndex
from optremarks.model import AnnotatedReference, Function, Location, PlainText, Remark


def make_remark(file, line=1, name="NoDefinition", refs=()):
    message = [PlainText("x")]
    message += [AnnotatedReference("f", Location(ref, 1, 1)) for ref in refs]
    return Remark(
        pass_name="inline",
        name=name,
        function=Function("main", Location(file, line, 0)),
        message=tuple(message),
    )


class TestFileIndex:

    def test_groups_in_insertion_order(self):
        a1 = make_remark("src/a.rs", 1)
        b1 = make_remark("src/b.rs", 2)
        a2 = make_remark("src/a.rs", 3)
        index = FileIndex.build([a1, b1, a2])
        assert index.files() == ["src/a.rs", "src/b.rs"]
        assert index.remarks_for("src/a.rs") == [a1, a2]
        assert len(index) == 2

    def test_referenced_files_get_keys(self):
        index = FileIndex.build([make_remark("src/a.rs", refs=["src/lib.rs"])])
        assert "src/lib.rs" in index
        assert index.remarks_for("src/lib.rs") == []
        assert index.populated() == [("src/a.rs", index.remarks_for("src/a.rs"))]

    def test_referenced_file_keeps_records_added_later(self):
        first = make_remark("src/a.rs", refs=["src/b.rs"])
        second = make_remark("src/b.rs")
        index = FileIndex.build([first, second])
        assert index.remarks_for("src/b.rs") == [second]

    def test_every_remark_and_reference_is_indexed(self):
        remarks = [
            make_remark("src/a.rs", refs=["src/c.rs"]),
            make_remark("/abs/std.rs", refs=["src/a.rs"]),
        ]
        index = FileIndex.build(remarks)
        for remark in remarks:
            assert remark.location.file in index
            for ref in remark.references():
                assert ref.location.file in index
        assert sorted(index) == ["/abs/std.rs", "src/a.rs", "src/c.rs"]

    def test_remarks_without_location_are_skipped(self):
        remark = Remark("inline", "X", Function("main"), ())
        assert len(FileIndex.build([remark])) == 0

    def test_unknown_key(self):
        assert FileIndex.build([]).remarks_for("nope") == []
