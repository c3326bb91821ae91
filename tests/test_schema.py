"""Schema tests."""

from pytablecraft.schema import ColumnSchema, TableSchema


class TestTableSchema:
    def test_create_schema(self):
        schema = TableSchema("orders", [
            ColumnSchema(name="id", type="integer"),
            ColumnSchema(name="status", type="text"),
        ])
        assert len(schema) == 2
        assert schema.name == "orders"

    def test_find_column(self):
        schema = TableSchema("orders", [
            ColumnSchema(name="id", type="integer", nullable=False),
        ])
        column = schema.find_column("id")
        assert column is not None
        assert column.nullable is False

    def test_find_column_not_found(self):
        schema = TableSchema("orders", [ColumnSchema(name="id")])
        assert schema.find_column("nonexistent") is None

    def test_contains(self):
        schema = TableSchema("orders", [ColumnSchema(name="id")])
        assert "id" in schema
        assert "total" not in schema

    def test_columns_property(self):
        columns = [ColumnSchema(name="a"), ColumnSchema(name="b", type="integer")]
        schema = TableSchema("t", columns)
        assert schema.columns == columns

    def test_default_type(self):
        assert ColumnSchema(name="a").type == "text"
