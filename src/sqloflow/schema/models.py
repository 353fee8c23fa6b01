"""Pydantic models for the static schema catalog."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CatalogColumn(BaseModel):
    """A column declared by a CREATE TABLE statement."""

    name: str = Field(..., description="Column name as declared")
    type: str = Field("unknown", description="Normalized SQL type, e.g. 'varchar(100)'")
    nullable: Optional[bool] = Field(
        None, description="False for NOT NULL columns, None when unspecified"
    )
    primary_key: bool = False
    unique: bool = False
    default: Optional[str] = Field(None, description="DEFAULT expression text")


class TableSchema(BaseModel):
    """Columns of one declared table, in declaration order."""

    name: str = Field(..., description="Table name as declared (may be qualified)")
    columns: List[CatalogColumn] = Field(default_factory=list)

    def get_column(self, name: str) -> Optional[CatalogColumn]:
        lowered = name.lower()
        for column in self.columns:
            if column.name.lower() == lowered:
                return column
        return None

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


class SchemaCatalog(BaseModel):
    """Table name -> schema mapping built from CREATE TABLE statements.

    Keys are lower-cased; lookups are case-insensitive and accept either the
    qualified (``schema.table``) or the bare table name.
    """

    tables: Dict[str, TableSchema] = Field(default_factory=dict)

    def add_table(self, table: TableSchema) -> None:
        self.tables[table.name.lower()] = table

    def get_table(self, name: str) -> Optional[TableSchema]:
        """
        Look up a table by name.

        Args:
            name: Bare or qualified table name (any case)

        Returns:
            The matching TableSchema, or None when the table is undeclared
        """
        key = name.lower()
        if key in self.tables:
            return self.tables[key]

        bare = key.rsplit(".", 1)[-1]
        if bare in self.tables:
            return self.tables[bare]
        for table_key, table in self.tables.items():
            if table_key.rsplit(".", 1)[-1] == bare:
                return table
        return None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get_table(name) is not None
