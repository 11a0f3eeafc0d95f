"""
Unit Tests for the Block Extractor
==================================

Fence scanning, expectation parsing and block metadata.
"""

import pytest

from tutorial_verifier.errors import ParseError
from tutorial_verifier.extractor import extract_blocks, extract_file, parse_expectation
from tutorial_verifier.models import BlockKind, ObjectKind, SqlObject


class TestFenceScanning:
    """Tests for finding SQL fences in Markdown."""

    def test_block_text_is_verbatim(self) -> None:
        """Test that block text is the exact content between the fences."""
        body = "SELECT id,\n       name   -- trailing comment\nFROM  parcels ;\n"
        doc = f"Intro\n\n```sql\n{body}```\n"
        blocks = extract_blocks(doc)

        assert len(blocks) == 1
        assert blocks[0].sql + "\n" == body
        assert blocks[0].start_line == 3

    def test_only_sql_languages_are_blocks(self) -> None:
        """Test that shell and python fences are ignored."""
        doc = "```bash\npsql -f x.sql\n```\n\n```python\nprint(1)\n```\n\n```postgresql\nSELECT 1;\n```\n"
        blocks = extract_blocks(doc)

        assert [b.sql for b in blocks] == ["SELECT 1;"]
        assert blocks[0].index == 0

    def test_nested_fence_inside_markdown_example(self) -> None:
        """Test that a SQL fence shown inside a longer fence is not extracted."""
        doc = (
            "````markdown\n"
            "```sql\n"
            "SELECT 'not a real block';\n"
            "```\n"
            "````\n"
            "\n"
            "```sql\n"
            "SELECT 2;\n"
            "```\n"
        )
        blocks = extract_blocks(doc)

        assert len(blocks) == 1
        assert blocks[0].sql == "SELECT 2;"

    def test_longer_fence_keeps_inner_backticks(self) -> None:
        """Test that a four-backtick SQL fence is only closed by four or more backticks."""
        doc = "````sql\nSELECT '```' AS fence;\n```\nSELECT 3;\n````\n"
        blocks = extract_blocks(doc)

        assert len(blocks) == 1
        assert blocks[0].sql == "SELECT '```' AS fence;\n```\nSELECT 3;"

    def test_tilde_fence(self) -> None:
        """Test that tilde fences are recognised."""
        blocks = extract_blocks("~~~sql\nSELECT 1;\n~~~\n")
        assert len(blocks) == 1

    def test_unterminated_fence(self) -> None:
        """Test that an unterminated fence is a parse error with its line."""
        doc = "# Title\n\n```sql\nSELECT 1;\n"
        with pytest.raises(ParseError) as exc_info:
            extract_blocks(doc)

        assert exc_info.value.line == 3
        assert "unterminated" in str(exc_info.value)

    def test_sections_follow_headings(self) -> None:
        """Test that blocks carry the nearest preceding heading."""
        doc = "# Intro\n```sql\nSELECT 1;\n```\n## Loading data\n```sql\nSELECT 2;\n```\n"
        blocks = extract_blocks(doc)

        assert [b.section for b in blocks] == ["Intro", "Loading data"]

    def test_heading_inside_fence_is_not_a_section(self) -> None:
        """Test that a comment line starting with # inside a fence does not change the section."""
        doc = "# Real\n```sql\n# not a heading\n```\n```sql\nSELECT 1;\n```\n"
        blocks = extract_blocks(doc)

        assert blocks[1].section == "Real"

    def test_extract_file(self, bookshop_path) -> None:
        """Test reading a document from disk."""
        blocks = extract_file(bookshop_path)
        assert len(blocks) == 7
        assert [b.index for b in blocks] == list(range(7))


class TestBlockMetadata:
    """Tests for kinds, definitions and references."""

    def test_kinds(self, bookshop_blocks) -> None:
        """Test block classification by leading statement."""
        kinds = [b.kind for b in bookshop_blocks]
        assert kinds[:4] == [BlockKind.DDL, BlockKind.DML, BlockKind.QUERY, BlockKind.DDL]

    def test_defines_and_requires(self, bookshop_blocks) -> None:
        """Test that CREATE statements define and FROM clauses require."""
        create_table, _, query, create_view = bookshop_blocks[:4]

        assert create_table.defines == (SqlObject(ObjectKind.TABLE, "books"),)
        assert create_view.defines == (SqlObject(ObjectKind.VIEW, "cheap_books"),)
        assert "cheap_books" in query.requires
        assert "books" in create_view.requires

    def test_no_verify_flag_skips(self, bookshop_blocks) -> None:
        """Test that the no-verify fence flag marks a block skip."""
        assert bookshop_blocks[-1].skip is True
        assert not any(b.skip for b in bookshop_blocks[:-1])

    def test_verify_skip_marker(self) -> None:
        """Test that a verify: skip marker inside the block marks it skip."""
        blocks = extract_blocks("```sql\n-- verify: skip\nVACUUM FULL;\n```\n")
        assert blocks[0].skip is True

    def test_unknown_verify_marker(self) -> None:
        """Test that an unknown verify marker is rejected."""
        with pytest.raises(ParseError):
            extract_blocks("```sql\n-- verify: sometimes\nSELECT 1;\n```\n")

    def test_explicit_markers(self) -> None:
        """Test depends-on and defines markers."""
        doc = (
            "```sql\n"
            "-- defines: function:refresh_everything, parcels_loaded\n"
            "SELECT load_parcels();\n"
            "```\n"
            "```sql\n"
            "-- depends-on: parcels_loaded\n"
            "SELECT count(*) FROM parcels;\n"
            "```\n"
        )
        first, second = extract_blocks(doc)

        assert SqlObject(ObjectKind.FUNCTION, "refresh_everything") in first.defines
        assert SqlObject(ObjectKind.TABLE, "parcels_loaded") in first.defines
        assert "parcels_loaded" in second.requires

    def test_related_to_same_section(self) -> None:
        """Test that a query is tagged with the earlier block defining what it reads."""
        doc = (
            "## Views\n"
            "```sql\nCREATE VIEW v_parcels AS SELECT * FROM parcels;\n```\n"
            "```sql\nSELECT * FROM v_parcels;\n```\n"
            "## Elsewhere\n"
            "```sql\nSELECT * FROM v_parcels;\n```\n"
        )
        blocks = extract_blocks(doc)

        assert blocks[1].related_to == 0
        assert blocks[2].related_to is None


class TestExpectations:
    """Tests for expectation annotations."""

    def test_inline_rows(self, bookshop_blocks) -> None:
        """Test literal rows and columns written inside the block."""
        expectation = bookshop_blocks[2].expectation

        assert expectation.columns == ("title", "price")
        assert expectation.rows == (("Dune", "9.99"), ("Emma", "4.5"))
        assert expectation.ordered is True

    def test_html_comment_after_fence(self, bookshop_blocks) -> None:
        """Test an expectation given in an HTML comment after the closing fence."""
        assert bookshop_blocks[4].expectation.rows == (("26.49",),)

    def test_html_comment_split_on_semicolons(self) -> None:
        """Test several directives in one HTML comment."""
        doc = "```sql\nSELECT 1;\n```\n\n<!-- expect: non-empty; tolerance 1e-3; unordered -->\n"
        expectation = extract_blocks(doc)[0].expectation

        assert expectation.non_empty is True
        assert expectation.tolerance == pytest.approx(1e-3)
        assert expectation.ordered is False

    def test_html_comment_after_prose_is_ignored(self) -> None:
        """Test that an expect comment separated by prose does not attach."""
        doc = "```sql\nSELECT 1;\n```\nSome prose.\n<!-- expect: rows 5 -->\n"
        assert extract_blocks(doc)[0].expectation is None

    def test_no_annotation(self, bookshop_blocks) -> None:
        """Test that blocks without annotations have no expectation."""
        assert bookshop_blocks[0].expectation is None

    def test_expected_error(self, bookshop_blocks) -> None:
        """Test an expected error directive."""
        assert bookshop_blocks[5].expectation.expect_error == "no such table"

    def test_parse_all_directives(self) -> None:
        """Test each directive keyword."""
        expectation = parse_expectation(
            [(1, "rows 2"), (2, "columns Gid, Name"), (3, "row 1 | a"), (4, "empty")]
        )

        assert expectation.row_count == 2
        assert expectation.columns == ("gid", "name")
        assert expectation.rows == (("1", "a"),)
        assert expectation.empty is True

    def test_unknown_directive(self) -> None:
        """Test that an unknown directive names its line."""
        with pytest.raises(ParseError) as exc_info:
            parse_expectation([(7, "approximately 3")])
        assert exc_info.value.line == 7

    def test_malformed_count(self) -> None:
        """Test that a non-numeric row count is a parse error."""
        with pytest.raises(ParseError):
            parse_expectation([(2, "rows many")])

    def test_negative_count(self) -> None:
        """Test that a negative row count is rejected."""
        with pytest.raises(ParseError):
            parse_expectation([(2, "rows -1")])
