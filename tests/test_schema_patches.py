import unittest

from schema_patches import DIALECTS, PATCH_RULES, describe_rules, patch, rules_for


class TestPatchRules(unittest.TestCase):
    def test_rule_table_order(self) -> None:
        searches = [rule.search for rule in PATCH_RULES]
        self.assertLess(searches.index("; CREATE "), searches.index(";\n\nCREATE TABLE "))
        self.assertEqual(searches.index("BYTEA"), 6)
        self.assertEqual(len(PATCH_RULES), 13)

    def test_dialect_gating(self) -> None:
        self.assertEqual(len(rules_for("postgres")), 12)
        self.assertEqual(len(rules_for("mysql")), 6)
        self.assertEqual(len(rules_for("sqlite")), 5)
        self.assertTrue(all(rule.dialects is None for rule in rules_for("sqlite")))

    def test_workarounds_are_annotated(self) -> None:
        for rule in PATCH_RULES[1:]:
            self.assertIsNotNone(rule.workaround_for, rule.search)

    def test_describe_rules_lists_every_rule(self) -> None:
        lines = describe_rules().splitlines()
        self.assertEqual(len(lines), len(PATCH_RULES))
        self.assertIn("[postgres] 'BYTEA' -> 'TEXT'", lines[6])
        self.assertIn("[all]", lines[-1])


class TestPatch(unittest.TestCase):
    def test_appends_trailing_newline(self) -> None:
        for dialect in DIALECTS:
            out = patch("CREATE TABLE a (x INT);", dialect)
            self.assertTrue(out.endswith(";\n"))
            self.assertFalse(out.endswith("\n\n"))

    def test_does_not_double_trailing_newline(self) -> None:
        for dialect in DIALECTS:
            self.assertEqual(patch("SELECT 1;\n", dialect), "SELECT 1;\n")

    def test_empty_input(self) -> None:
        self.assertEqual(patch("", "mysql"), "\n")

    def test_statement_and_table_spacing(self) -> None:
        sql = "CREATE TABLE a (x INT); CREATE INDEX ix ON a (x); CREATE TABLE b (y INT);"
        out = patch(sql, "sqlite")
        self.assertIn("CREATE TABLE a (x INT);\n\nCREATE INDEX ix", out)
        self.assertIn("ON a (x);\n\n\nCREATE TABLE b", out)
        self.assertNotIn(";\n\n\nCREATE INDEX", out)

    def test_existing_blank_line_before_table_is_widened(self) -> None:
        out = patch("CREATE TABLE a (x INT);\n\nCREATE TABLE b (y INT);", "mysql")
        self.assertIn(";\n\n\nCREATE TABLE b", out)

    def test_sqlite_leaves_dialect_specific_patterns(self) -> None:
        sql = "a BYTEA,\nb DOUBLE PRECISION,\nPRIMARY KEY(\n  a)\nWHERE\n x = 1;"
        out = patch(sql, "sqlite")
        self.assertIn("BYTEA", out)
        self.assertIn("DOUBLE PRECISION", out)
        self.assertIn("KEY(\n  a)", out)
        self.assertIn("WHERE\n x", out)

    def test_postgres_bytea_becomes_text(self) -> None:
        out = patch("col BYTEA NOT NULL;", "postgres")
        self.assertIn("col TEXT NOT NULL;", out)
        self.assertNotIn("BYTEA", out)

    def test_bytea_kept_outside_postgres(self) -> None:
        self.assertIn("BYTEA", patch("col BYTEA;", "mysql"))

    def test_mysql_double_precision_becomes_float(self) -> None:
        self.assertIn("val FLOAT;", patch("val DOUBLE PRECISION;", "mysql"))
        self.assertIn("val DOUBLE PRECISION;", patch("val DOUBLE PRECISION;", "postgres"))

    def test_table_options_collapse(self) -> None:
        out = patch("CREATE TABLE a (\n  x INT\n)\n/*$wgDBTableOptions*/;\n", "mysql")
        self.assertIn(") /*$wgDBTableOptions*/;", out)
        self.assertNotIn("\n/*$wgDBTableOptions*/;", out)

    def test_table_options_collapse_with_lone_terminator(self) -> None:
        out = patch(")\n/*$wgDBTableOptions*/\n;", "mysql")
        self.assertEqual(out, ") /*$wgDBTableOptions*/;\n")

    def test_prefix_placeholder_kept_inline(self) -> None:
        sql = "CREATE TABLE\n/*_*/\nactor (x INT);"
        self.assertEqual(patch(sql, "mysql"), "CREATE TABLE /*_*/actor (x INT);\n")
        self.assertEqual(patch(sql, "sqlite"), "CREATE TABLE /*_*/actor (x INT);\n")

    def test_postgres_prefix_placeholder_removed(self) -> None:
        sql = "CREATE TABLE\n/*_*/\nactor (x INT);"
        self.assertEqual(patch(sql, "postgres"), "CREATE TABLE actor (x INT);\n")

    def test_postgres_partial_index_formatting(self) -> None:
        sql = "CREATE INDEX ix ON\n  /*_*/\n  page (page_id)\nWHERE\n  page_id > 0;"
        out = patch(sql, "postgres")
        self.assertEqual(out, "CREATE INDEX ix ON page (page_id)\nWHERE page_id > 0;\n")

    def test_postgres_indentation_fixes(self) -> None:
        sql = "CREATE TABLE t (\n    a INT,\n    PRIMARY KEY(\n  a)\n  );"
        out = patch(sql, "postgres")
        self.assertEqual(out, "CREATE TABLE t (\n  a INT,\n  PRIMARY KEY(\n    a)\n);\n")

    def test_postgres_end_to_end_scenario(self) -> None:
        sql = "CREATE TABLE a (x BYTEA); CREATE TABLE b (y DOUBLE PRECISION) /*$wgDBTableOptions*/;\n"
        out = patch(sql, "postgres")
        self.assertIn("x TEXT", out)
        self.assertIn("y DOUBLE PRECISION", out)
        self.assertIn("CREATE TABLE a (x TEXT);\n\n\nCREATE TABLE b", out)
        self.assertTrue(out.endswith("/*$wgDBTableOptions*/;\n"))
        self.assertFalse(out.endswith("\n\n"))

    def test_input_is_not_mutated_for_unrelated_text(self) -> None:
        sql = "-- Source: maintenance/tables.json\n-- Do not modify this file directly."
        self.assertEqual(patch(sql, "postgres"), sql + "\n")


if __name__ == "__main__":
    unittest.main()
