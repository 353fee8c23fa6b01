"""Lower SQLGlot expression trees into sqloflow syntax models."""

from typing import Any, Dict, List, Optional, Tuple

from sqlglot import exp, parse
from sqlglot.errors import ParseError

from sqloflow.syntax.models import (
    Assignment,
    BinaryExpr,
    CaseExpr,
    CastExpr,
    ColumnDefinition,
    ColumnRef,
    CommonTableExpr,
    CreateStatement,
    DeleteStatement,
    Expression,
    ExprList,
    FromItem,
    FunctionCall,
    InsertStatement,
    IntervalExpr,
    LiteralValue,
    OrderItem,
    RawStatement,
    SelectItem,
    SelectStatement,
    Star,
    Statement,
    SubqueryExpr,
    UnaryExpr,
    UnknownExpr,
    UpdateStatement,
    WhenClause,
)

# Dialect names accepted on the command line, mapped to SQLGlot names.
DIALECT_ALIASES: Dict[str, str] = {
    "postgresql": "postgres",
    "mariadb": "mysql",
    "transactsql": "tsql",
}

BINARY_OPERATORS: Dict[type, str] = {
    exp.EQ: "=",
    exp.NEQ: "<>",
    exp.GT: ">",
    exp.GTE: ">=",
    exp.LT: "<",
    exp.LTE: "<=",
    exp.And: "AND",
    exp.Or: "OR",
    exp.Add: "+",
    exp.Sub: "-",
    exp.Mul: "*",
    exp.Div: "/",
    exp.Mod: "%",
    exp.Like: "LIKE",
    exp.ILike: "ILIKE",
    exp.Is: "IS",
    exp.DPipe: "||",
}

NEGATED_OPERATORS: Dict[str, str] = {
    "IN": "NOT IN",
    "LIKE": "NOT LIKE",
    "ILIKE": "NOT ILIKE",
    "IS": "IS NOT",
    "BETWEEN": "NOT BETWEEN",
}


def resolve_dialect(dialect: str) -> str:
    """Map a user-facing dialect name to the SQLGlot dialect name."""
    return DIALECT_ALIASES.get(dialect.lower(), dialect.lower())


def parse_sql(sql: str, dialect: str = "postgres") -> List[Statement]:
    """
    Parse SQL text into a list of sqloflow statements.

    Args:
        sql: SQL text (may contain multiple statements)
        dialect: SQL dialect (default: postgres)

    Returns:
        One statement model per parsed statement, in source order

    Raises:
        ParseError: If the SQL cannot be parsed or contains no statements
    """
    read = resolve_dialect(dialect)
    try:
        expressions = [expr for expr in parse(sql, read=read) if expr is not None]
        if not expressions:
            raise ParseError("No valid SQL statements found")
    except ParseError as e:
        raise ParseError(f"Invalid SQL syntax: {e}") from e

    builder = StatementBuilder(dialect=read)
    return [builder.build_statement(expr) for expr in expressions]


def _arg(node: exp.Expression, *keys: str) -> Any:
    # SQLGlot >= 28 renamed keyword-like args ("from" -> "from_", "with" -> "with_")
    for key in keys:
        value = node.args.get(key)
        if value is not None:
            return value
    return None


def _unwrap_query(node: exp.Expression) -> exp.Expression:
    while isinstance(node, (exp.Subquery, exp.Paren)) and node.this is not None:
        node = node.this
    return node


class StatementBuilder:
    """Convert SQLGlot statement trees into sqloflow syntax models."""

    def __init__(self, dialect: str = "postgres"):
        self.dialect = dialect

    def build_statement(self, node: exp.Expression) -> Statement:
        """Lower one top-level SQLGlot statement."""
        if isinstance(node, exp.Subquery):
            node = _unwrap_query(node)

        if isinstance(node, (exp.Select, exp.SetOperation)):
            return self.build_query(node)
        if isinstance(node, exp.Update):
            return self._build_update(node)
        if isinstance(node, exp.Insert):
            return self._build_insert(node)
        if isinstance(node, exp.Delete):
            return DeleteStatement(
                table=self._table_name(node.this),
                alias=(node.this.alias or None) if node.this is not None else None,
                where=self._clause_condition(node.args.get("where")),
                sql=self._sql(node),
            )
        if isinstance(node, exp.Create):
            return self._build_create(node)
        return RawStatement(type=node.key, sql=self._sql(node))

    def build_query(self, node: exp.Expression) -> SelectStatement:
        """Lower a SELECT or set operation into a chained SelectStatement."""
        node = _unwrap_query(node)
        if not isinstance(node, exp.SetOperation):
            if not isinstance(node, exp.Select):
                # VALUES lists and other query-like nodes
                return SelectStatement(
                    columns=[SelectItem(expr=self.build_expression(node))],
                    sql=self._sql(node),
                )
            return self._build_select(node)

        branches = self._flatten_set_operation(node)
        last_branch, _ = branches[-1]
        statement = self._build_branch(last_branch)
        for branch, set_op in reversed(branches[:-1]):
            statement = self._build_branch(branch).model_copy(
                update={"set_op": set_op, "next": statement}
            )

        # ORDER BY / LIMIT / OFFSET written after the last branch apply to the
        # whole set operation and hang off the head of the chain
        order = node.args.get("order")
        update: Dict[str, Any] = {
            "set_order_by": [self._build_order_item(o) for o in order.expressions]
            if order
            else [],
            "set_limit": self._limit_value(node.args.get("limit")),
            "set_offset": self._limit_value(node.args.get("offset")),
        }
        ctes = self._build_ctes(node)
        if ctes:
            update["ctes"] = ctes + statement.ctes
        return statement.model_copy(update=update)

    def _build_branch(self, branch: exp.Expression) -> SelectStatement:
        if isinstance(branch, exp.Select):
            return self._build_select(branch)
        return self.build_query(branch)

    def _flatten_set_operation(
        self, node: exp.Expression
    ) -> List[Tuple[exp.Expression, Optional[str]]]:
        """Flatten a set-operation tree into (branch, op-to-next) pairs."""
        node = _unwrap_query(node)
        if not isinstance(node, exp.SetOperation):
            return [(node, None)]

        op = type(node).__name__.upper()
        if not node.args.get("distinct"):
            op = f"{op} ALL"

        left = self._flatten_set_operation(node.left)
        right = self._flatten_set_operation(node.right)
        last_branch, _ = left[-1]
        left[-1] = (last_branch, op)
        return left + right

    def _build_ctes(self, node: exp.Expression) -> List[CommonTableExpr]:
        with_clause = _arg(node, "with_", "with")
        if not with_clause:
            return []
        ctes = []
        for cte in with_clause.expressions:
            if not isinstance(cte, exp.CTE) or not cte.alias:
                continue
            column_names = []
            table_alias = cte.args.get("alias")
            if isinstance(table_alias, exp.TableAlias):
                column_names = [col.name for col in table_alias.columns]
            ctes.append(
                CommonTableExpr(
                    name=cte.alias,
                    query=self.build_query(cte.this),
                    columns=column_names,
                )
            )
        return ctes

    def _build_select(self, node: exp.Select) -> SelectStatement:
        from_items: List[FromItem] = []
        from_clause = _arg(node, "from_", "from")
        if from_clause is not None:
            from_items.append(self._build_from_item(from_clause.this))
            # Older SQLGlot versions keep comma-separated tables on the From node
            for extra in from_clause.expressions or []:
                from_items.append(self._build_from_item(extra, join="CROSS JOIN"))
        for join in node.args.get("joins") or []:
            from_items.append(self._build_join(join))

        group = node.args.get("group")
        order = node.args.get("order")
        limit = node.args.get("limit")
        offset = node.args.get("offset")

        return SelectStatement(
            ctes=self._build_ctes(node),
            distinct=bool(node.args.get("distinct")),
            columns=[self._build_select_item(p) for p in node.expressions],
            from_items=from_items,
            where=self._clause_condition(node.args.get("where")),
            group_by=[self.build_expression(e) for e in group.expressions]
            if group
            else [],
            having=self._clause_condition(node.args.get("having")),
            order_by=[self._build_order_item(o) for o in order.expressions]
            if order
            else [],
            limit=self._limit_value(limit),
            offset=self._limit_value(offset),
            sql=self._sql(node),
        )

    def _build_select_item(self, projection: exp.Expression) -> SelectItem:
        if isinstance(projection, exp.Alias):
            return SelectItem(
                expr=self.build_expression(projection.this), alias=projection.alias
            )
        return SelectItem(expr=self.build_expression(projection))

    def _build_order_item(self, ordered: exp.Expression) -> OrderItem:
        if isinstance(ordered, exp.Ordered):
            return OrderItem(
                expr=self.build_expression(ordered.this),
                direction="DESC" if ordered.args.get("desc") else "ASC",
            )
        return OrderItem(expr=self.build_expression(ordered))

    def _build_join(self, join: exp.Join) -> FromItem:
        using = [
            u.name for u in join.args.get("using") or [] if isinstance(u, exp.Expression)
        ]
        on = join.args.get("on")
        parts = [
            str(part).upper()
            for part in (join.args.get("method"), join.side, join.kind)
            if part
        ]
        if parts:
            join_type = " ".join(parts) + " JOIN"
        else:
            join_type = "INNER JOIN" if on is not None or using else "CROSS JOIN"

        return self._build_from_item(
            join.this,
            join=join_type,
            on=self.build_expression(on) if on is not None else None,
            using=using,
        )

    def _build_from_item(
        self,
        node: exp.Expression,
        join: Optional[str] = None,
        on: Optional[Expression] = None,
        using: Optional[List[str]] = None,
    ) -> FromItem:
        alias = node.alias or None
        if isinstance(node, exp.Table):
            return FromItem(
                table=node.name,
                db=node.db or None,
                alias=alias,
                join=join,
                on=on,
                using=using or [],
            )
        if isinstance(node, exp.Subquery):
            return FromItem(
                table=alias or "subquery",
                alias=alias,
                join=join,
                on=on,
                using=using or [],
                subquery=self.build_query(node.this),
            )
        # Table functions, UNNEST, LATERAL and friends
        return FromItem(
            table=alias or self._sql(node),
            alias=alias,
            join=join,
            on=on,
            using=using or [],
        )

    def _build_update(self, node: exp.Update) -> UpdateStatement:
        assignments = []
        for item in node.expressions:
            if isinstance(item, exp.EQ):
                assignments.append(
                    Assignment(
                        column=self._sql(item.this),
                        value=self.build_expression(item.expression),
                    )
                )
        return UpdateStatement(
            table=self._table_name(node.this),
            alias=(node.this.alias or None) if node.this is not None else None,
            assignments=assignments,
            where=self._clause_condition(node.args.get("where")),
            sql=self._sql(node),
        )

    def _build_insert(self, node: exp.Insert) -> InsertStatement:
        target = node.this
        columns: List[str] = []
        if isinstance(target, exp.Schema):
            columns = [col.name for col in target.expressions]
        return InsertStatement(
            table=self._table_name(target),
            columns=columns,
            sql=self._sql(node),
        )

    def _build_create(self, node: exp.Create) -> CreateStatement:
        target = node.this
        columns: List[ColumnDefinition] = []
        if isinstance(target, exp.Schema):
            table_level_keys = set()
            for definition in target.expressions:
                if isinstance(definition, exp.PrimaryKey):
                    table_level_keys.update(
                        (e.this if isinstance(e, exp.Ordered) else e).name
                        for e in definition.expressions
                    )
            for definition in target.expressions:
                if isinstance(definition, exp.ColumnDef):
                    column = self._build_column_definition(definition)
                    if column.name in table_level_keys:
                        column.primary_key = True
                    columns.append(column)

        query = None
        source = node.expression
        if source is not None and isinstance(
            _unwrap_query(source), (exp.Select, exp.SetOperation)
        ):
            query = self.build_query(source)

        return CreateStatement(
            keyword=str(node.args.get("kind") or "table").lower(),
            table=self._table_name(target),
            columns=columns,
            query=query,
            sql=self._sql(node),
        )

    def _build_column_definition(self, node: exp.ColumnDef) -> ColumnDefinition:
        kind = node.args.get("kind")
        column = ColumnDefinition(
            name=node.name or None,
            data_type=self._sql(kind) if kind is not None else None,
        )
        for constraint in node.args.get("constraints") or []:
            constraint_kind = constraint.args.get("kind")
            if isinstance(constraint_kind, exp.NotNullColumnConstraint):
                column.nullable = bool(constraint_kind.args.get("allow_null"))
            elif isinstance(constraint_kind, exp.PrimaryKeyColumnConstraint):
                column.primary_key = True
            elif isinstance(constraint_kind, exp.UniqueColumnConstraint):
                column.unique = True
            elif isinstance(constraint_kind, exp.DefaultColumnConstraint):
                column.default = self._sql(constraint_kind.this)
        return column

    def build_expression(self, node: Optional[exp.Expression]) -> Expression:
        """Lower a SQLGlot expression into the closed expression union."""
        if node is None:
            return UnknownExpr()

        if isinstance(node, (exp.Paren, exp.Alias)):
            return self.build_expression(node.this)
        if isinstance(node, exp.Column):
            if isinstance(node.this, exp.Star):
                return Star(table=node.table or None)
            return ColumnRef(table=node.table or None, column=node.name)
        if isinstance(node, exp.Star):
            return Star()
        if isinstance(node, exp.Literal):
            if node.is_string:
                return LiteralValue(value=node.this, literal_type="string")
            return LiteralValue(value=self._number(node.this), literal_type="number")
        if isinstance(node, exp.Boolean):
            return LiteralValue(value=bool(node.this), literal_type="boolean")
        if isinstance(node, exp.Null):
            return LiteralValue(value=None, literal_type="null")
        if isinstance(node, exp.Subquery):
            return SubqueryExpr(query=self.build_query(node.this))
        if isinstance(node, exp.Exists):
            return UnaryExpr(
                operator="EXISTS",
                operand=SubqueryExpr(
                    query=self.build_query(node.this), subquery_type="exists"
                ),
            )
        if isinstance(node, exp.Not):
            return self._build_not(node)
        if isinstance(node, exp.In):
            return self._build_in(node)
        if isinstance(node, exp.Between):
            return BinaryExpr(
                operator="BETWEEN",
                left=self.build_expression(node.this),
                right=ExprList(
                    items=[
                        self.build_expression(node.args.get("low")),
                        self.build_expression(node.args.get("high")),
                    ]
                ),
            )
        if isinstance(node, exp.Neg):
            return UnaryExpr(operator="-", operand=self.build_expression(node.this))
        if isinstance(node, exp.Interval):
            unit = node.args.get("unit")
            return IntervalExpr(
                value=self.build_expression(node.this),
                unit=self._sql(unit).upper() if unit is not None else None,
            )
        if isinstance(node, exp.Cast):
            return CastExpr(expr=self.build_expression(node.this), to=self._sql(node.to))
        if isinstance(node, exp.Case):
            return self._build_case(node)
        if isinstance(node, exp.Tuple):
            return ExprList(items=[self.build_expression(e) for e in node.expressions])
        if isinstance(node, exp.Window):
            return self._build_window(node)
        if isinstance(node, exp.Binary):
            operator = BINARY_OPERATORS.get(type(node), node.key.upper())
            return BinaryExpr(
                operator=operator,
                left=self.build_expression(node.left),
                right=self.build_expression(node.right),
            )
        if isinstance(node, exp.Func):
            return self._build_function(node)
        return UnknownExpr(value=self._sql(node))

    def _build_not(self, node: exp.Not) -> Expression:
        inner = node.this
        if isinstance(inner, exp.Exists):
            return UnaryExpr(
                operator="NOT EXISTS",
                operand=SubqueryExpr(
                    query=self.build_query(inner.this), subquery_type="exists"
                ),
            )
        built = self.build_expression(inner)
        if (
            not isinstance(inner, exp.Paren)
            and isinstance(built, BinaryExpr)
            and built.operator in NEGATED_OPERATORS
        ):
            return built.model_copy(
                update={"operator": NEGATED_OPERATORS[built.operator]}
            )
        return UnaryExpr(operator="NOT", operand=built)

    def _build_in(self, node: exp.In) -> BinaryExpr:
        query = node.args.get("query")
        right: Expression
        if query is not None:
            right = SubqueryExpr(query=self.build_query(query), subquery_type="in")
        else:
            right = ExprList(items=[self.build_expression(e) for e in node.expressions])
        return BinaryExpr(
            operator="IN", left=self.build_expression(node.this), right=right
        )

    def _build_case(self, node: exp.Case) -> CaseExpr:
        default = node.args.get("default")
        return CaseExpr(
            operand=self.build_expression(node.this) if node.this is not None else None,
            whens=[
                WhenClause(
                    condition=self.build_expression(when.this),
                    result=self.build_expression(when.args.get("true")),
                )
                for when in node.args.get("ifs") or []
            ],
            default=self.build_expression(default) if default is not None else None,
        )

    def _build_window(self, node: exp.Window) -> Expression:
        inner = node.this
        function = self.build_expression(inner)
        if isinstance(function, UnknownExpr) and isinstance(inner, exp.Func):
            # Niladic window functions such as ROW_NUMBER()
            function = FunctionCall(
                name=inner.sql_name(), aggregate=isinstance(inner, exp.AggFunc)
            )
        if not isinstance(function, FunctionCall):
            return UnknownExpr(value=self._sql(node))

        parts = []
        partition = node.args.get("partition_by")
        if partition:
            parts.append("PARTITION BY " + ", ".join(self._sql(p) for p in partition))
        order = node.args.get("order")
        if order is not None:
            parts.append(self._sql(order).strip())
        spec = node.args.get("spec")
        if spec is not None:
            parts.append(self._sql(spec))
        return function.model_copy(update={"over": " ".join(parts)})

    def _build_function(self, node: exp.Func) -> Expression:
        if isinstance(node, exp.Anonymous):
            name = str(node.this).upper()
            raw_args = list(node.expressions)
        else:
            name = node.sql_name()
            raw_args = []
            for key in node.arg_types:
                value = node.args.get(key)
                if isinstance(value, exp.Expression):
                    raw_args.append(value)
                elif isinstance(value, list):
                    raw_args.extend(v for v in value if isinstance(v, exp.Expression))
            if not raw_args:
                # Niladic builtins such as CURRENT_TIMESTAMP
                return UnknownExpr(value=self._sql(node))

        distinct = False
        args: List[Expression] = []
        for arg in raw_args:
            if isinstance(arg, exp.Distinct):
                distinct = True
                args.extend(self.build_expression(e) for e in arg.expressions)
            else:
                args.append(self.build_expression(arg))

        return FunctionCall(
            name=name,
            args=args,
            distinct=distinct,
            aggregate=isinstance(node, exp.AggFunc),
        )

    def _clause_condition(self, clause: Optional[exp.Expression]) -> Optional[Expression]:
        if clause is None:
            return None
        return self.build_expression(clause.this)

    def _limit_value(self, clause: Optional[exp.Expression]) -> Optional[Expression]:
        if clause is None:
            return None
        value = clause.args.get("expression") or clause.this
        return self.build_expression(value) if value is not None else None

    def _table_name(self, node: Optional[exp.Expression]) -> str:
        if isinstance(node, exp.Schema):
            node = node.this
        if isinstance(node, exp.Table):
            parts = [p for p in (node.catalog, node.db, node.name) if p]
            return ".".join(parts)
        if node is None:
            return "unknown"
        return self._sql(node)

    def _sql(self, node: exp.Expression) -> str:
        return node.sql(dialect=self.dialect)

    @staticmethod
    def _number(text: str) -> Any:
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return text
