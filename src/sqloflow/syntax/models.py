"""Pydantic models for the typed SQL syntax tree consumed by the converter.

Expressions form a closed tagged union discriminated by ``type``; the
converter's printer and column walker match on these variants exhaustively.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

SubqueryKind = Literal["scalar", "in", "exists"]


class ColumnRef(BaseModel):
    """A column reference, optionally qualified by a table alias."""

    type: Literal["column_ref"] = "column_ref"
    table: Optional[str] = Field(None, description="Table name or alias qualifier")
    column: str = Field(..., description="Column name")

    @property
    def qualified_name(self) -> str:
        return f"{self.table}.{self.column}" if self.table else self.column


class Star(BaseModel):
    """``*`` or ``alias.*``."""

    type: Literal["star"] = "star"
    table: Optional[str] = None


class LiteralValue(BaseModel):
    """A string, number, boolean or NULL literal."""

    type: Literal["literal"] = "literal"
    value: Union[bool, int, float, str, None] = None
    literal_type: Literal["string", "number", "boolean", "null"] = "string"


class BinaryExpr(BaseModel):
    """Binary operator, including IN / NOT IN / BETWEEN / LIKE / IS."""

    type: Literal["binary_expr"] = "binary_expr"
    operator: str
    left: "Expression"
    right: "Expression"


class UnaryExpr(BaseModel):
    """Prefix operator: NOT, EXISTS, NOT EXISTS or unary minus."""

    type: Literal["unary_expr"] = "unary_expr"
    operator: str
    operand: "Expression"


class FunctionCall(BaseModel):
    """Scalar, aggregate or window function call."""

    type: Literal["function"] = "function"
    name: str
    args: List["Expression"] = Field(default_factory=list)
    distinct: bool = False
    aggregate: bool = False
    over: Optional[str] = Field(None, description="Window specification text")


class WhenClause(BaseModel):
    condition: "Expression"
    result: "Expression"


class CaseExpr(BaseModel):
    type: Literal["case"] = "case"
    operand: Optional["Expression"] = None
    whens: List[WhenClause] = Field(default_factory=list)
    default: Optional["Expression"] = None


class CastExpr(BaseModel):
    type: Literal["cast"] = "cast"
    expr: "Expression"
    to: str


class IntervalExpr(BaseModel):
    type: Literal["interval"] = "interval"
    value: "Expression"
    unit: Optional[str] = None


class ExprList(BaseModel):
    """Parenthesized list of expressions, e.g. the right side of ``IN (1, 2)``."""

    type: Literal["expr_list"] = "expr_list"
    items: List["Expression"] = Field(default_factory=list)


class SubqueryExpr(BaseModel):
    """A nested SELECT used as an expression operand."""

    type: Literal["subquery"] = "subquery"
    query: "SelectStatement"
    subquery_type: SubqueryKind = "scalar"


class UnknownExpr(BaseModel):
    """An expression shape the syntax adapter could not map.

    ``value`` carries the raw SQL text when it is available.
    """

    type: Literal["unknown"] = "unknown"
    value: Optional[str] = None


Expression = Annotated[
    Union[
        ColumnRef,
        Star,
        LiteralValue,
        BinaryExpr,
        UnaryExpr,
        FunctionCall,
        CaseExpr,
        CastExpr,
        IntervalExpr,
        ExprList,
        SubqueryExpr,
        UnknownExpr,
    ],
    Field(discriminator="type"),
]


class SelectItem(BaseModel):
    """One projection of a select list."""

    expr: Expression
    alias: Optional[str] = None


class FromItem(BaseModel):
    """A FROM-list entry: the first table, or a joined table."""

    table: str = Field(..., description="Table, CTE or derived-table name")
    db: Optional[str] = Field(None, description="Schema/database qualifier")
    alias: Optional[str] = None
    join: Optional[str] = Field(
        None, description="Join type (e.g. 'LEFT JOIN'); None for the first entry"
    )
    on: Optional[Expression] = None
    using: List[str] = Field(default_factory=list)
    subquery: Optional["SelectStatement"] = Field(
        None, description="Body of a derived table"
    )

    @property
    def qualified_table(self) -> str:
        return f"{self.db}.{self.table}" if self.db else self.table

    @property
    def reference_name(self) -> str:
        """Name the rest of the query uses for this entry (alias or table)."""
        return self.alias or self.table


class OrderItem(BaseModel):
    expr: Expression
    direction: Literal["ASC", "DESC"] = "ASC"


class CommonTableExpr(BaseModel):
    name: str
    query: "SelectStatement"
    columns: List[str] = Field(default_factory=list)


class SelectStatement(BaseModel):
    """A SELECT, possibly the head of a UNION/INTERSECT/EXCEPT chain."""

    type: Literal["select"] = "select"
    ctes: List[CommonTableExpr] = Field(default_factory=list)
    distinct: bool = False
    columns: List[SelectItem] = Field(default_factory=list)
    from_items: List[FromItem] = Field(default_factory=list)
    where: Optional[Expression] = None
    group_by: List[Expression] = Field(default_factory=list)
    having: Optional[Expression] = None
    order_by: List[OrderItem] = Field(default_factory=list)
    limit: Optional[Expression] = None
    offset: Optional[Expression] = None
    set_op: Optional[str] = Field(
        None, description="Set operation joining this branch to `next`"
    )
    next: Optional["SelectStatement"] = None
    set_order_by: List[OrderItem] = Field(
        default_factory=list,
        description="ORDER BY applied to the whole set-operation chain",
    )
    set_limit: Optional[Expression] = None
    set_offset: Optional[Expression] = None
    sql: Optional[str] = Field(None, description="SQL text of this statement")


class Assignment(BaseModel):
    column: str
    value: Expression


class UpdateStatement(BaseModel):
    type: Literal["update"] = "update"
    table: str
    alias: Optional[str] = None
    assignments: List[Assignment] = Field(default_factory=list)
    where: Optional[Expression] = None
    sql: Optional[str] = None


class InsertStatement(BaseModel):
    """INSERT target; the source rows (VALUES or a query) are not modeled."""

    type: Literal["insert"] = "insert"
    table: str
    columns: List[str] = Field(default_factory=list)
    sql: Optional[str] = None


class DeleteStatement(BaseModel):
    type: Literal["delete"] = "delete"
    table: str
    alias: Optional[str] = None
    where: Optional[Expression] = None
    sql: Optional[str] = None


class ColumnDefinition(BaseModel):
    """A column definition inside CREATE TABLE."""

    name: Optional[str] = None
    data_type: Optional[str] = None
    nullable: Optional[bool] = None
    primary_key: bool = False
    unique: bool = False
    default: Optional[str] = None


class CreateStatement(BaseModel):
    type: Literal["create"] = "create"
    keyword: str = Field("table", description="Object kind, e.g. 'table' or 'view'")
    table: str
    columns: List[ColumnDefinition] = Field(default_factory=list)
    query: Optional[SelectStatement] = None
    sql: Optional[str] = None


class RawStatement(BaseModel):
    """Any statement kind the converter has no dedicated model for."""

    type: str
    sql: Optional[str] = None


Statement = Union[
    SelectStatement,
    UpdateStatement,
    InsertStatement,
    DeleteStatement,
    CreateStatement,
    RawStatement,
]


for _model in (
    BinaryExpr,
    UnaryExpr,
    FunctionCall,
    WhenClause,
    CaseExpr,
    CastExpr,
    IntervalExpr,
    ExprList,
    SubqueryExpr,
    SelectItem,
    FromItem,
    OrderItem,
    CommonTableExpr,
    SelectStatement,
    Assignment,
    UpdateStatement,
    InsertStatement,
    DeleteStatement,
    CreateStatement,
):
    _model.model_rebuild()
