# Overview: Query-builder gateway over the relational store; the only data access path the dashboard uses.

"""
Persistence Gateway

A small filter-chain query surface over the application's tables:

    rows = await gateway.table("products").select("id", "created_at").eq("environment_id", env_id).execute()

- Reads return a list of plain dicts keyed by the selected field names.
- Dotted column names ("products.environment_id") join the referenced table.
- insert/update/delete commit on success and return the affected records (or ids).
- Any database failure is raised as GatewayError after rolling the session back.

The gateway owns no business rules. Callers parse records into typed rows at
the boundary and decide what a failure means for them.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from sqlalchemy import delete as sa_delete
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Environment, Location, Membership, Product, ProductStatusHistory, Sale


TABLES = {
    "environments": Environment,
    "memberships": Membership,
    "locations": Location,
    "products": Product,
    "product_status_history": ProductStatusHistory,
    "sales": Sale,
}


class GatewayError(Exception):
    """Raised when a query against the store fails (connectivity, constraint, SQL)."""

    def __init__(self, message: str, *, table: str | None = None, operation: str | None = None):
        super().__init__(message)
        self.table = table
        self.operation = operation


class GatewayShapeError(ValueError):
    """Raised when a query or a returned record does not match the expected schema."""


def _record(obj) -> dict:
    return {attr.key: getattr(obj, attr.key) for attr in obj.__mapper__.column_attrs}


class TableQuery:
    """One pending operation against one table. Filters chain; execute() runs it."""

    def __init__(self, gateway: "SqlAlchemyGateway", name: str):
        if name not in TABLES:
            raise GatewayShapeError(f"Unknown table: {name}")
        self._gateway = gateway
        self._name = name
        self._model = TABLES[name]
        self._operation = "select"
        self._fields: tuple[str, ...] = ("*",)
        self._values: Any = None
        self._filters: list[tuple[str, str, Any]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: int | None = None

    # --- operations ---------------------------------------------------------

    def select(self, *fields: str) -> "TableQuery":
        self._operation = "select"
        self._fields = fields or ("*",)
        return self

    def insert(self, records: dict | Iterable[dict]) -> "TableQuery":
        self._operation = "insert"
        self._values = [records] if isinstance(records, dict) else list(records)
        return self

    def update(self, fields: dict) -> "TableQuery":
        self._operation = "update"
        self._values = dict(fields)
        return self

    def delete(self) -> "TableQuery":
        self._operation = "delete"
        return self

    # --- filters ------------------------------------------------------------

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._filters.append(("eq", column, value))
        return self

    def gte(self, column: str, value: Any) -> "TableQuery":
        self._filters.append(("gte", column, value))
        return self

    def lte(self, column: str, value: Any) -> "TableQuery":
        self._filters.append(("lte", column, value))
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        self._filters.append(("in", column, list(values)))
        return self

    def is_null(self, column: str) -> "TableQuery":
        self._filters.append(("is_null", column, None))
        return self

    def order(self, column: str, *, desc: bool = False) -> "TableQuery":
        self._order.append((column, desc))
        return self

    def limit(self, n: int) -> "TableQuery":
        self._limit = n
        return self

    # --- execution ----------------------------------------------------------

    async def execute(self) -> list[dict]:
        # Cooperative suspension point: concurrent callers interleave here.
        await asyncio.sleep(0)
        return self._gateway.run(self)

    def _resolve_column(self, name: str):
        if "." in name:
            table_name, column_name = name.split(".", 1)
            model = TABLES.get(table_name)
            if model is None:
                raise GatewayShapeError(f"Unknown table in column reference: {name}")
        else:
            model, column_name = self._model, name
        column = model.__table__.columns.get(column_name)
        if column is None:
            raise GatewayShapeError(f"Unknown column {name!r} on {self._name}")
        return model, column

    def _joined_models(self) -> list:
        joined = []
        names = [f for f in self._fields if f != "*"] + [c for _, c, _ in self._filters] + [c for c, _ in self._order]
        for name in names:
            model, _ = self._resolve_column(name)
            if model is not self._model and model not in joined:
                joined.append(model)
        return joined

    def _where_clauses(self) -> list:
        clauses = []
        for op, name, value in self._filters:
            _, column = self._resolve_column(name)
            if op == "eq":
                clauses.append(column == value)
            elif op == "gte":
                clauses.append(column >= value)
            elif op == "lte":
                clauses.append(column <= value)
            elif op == "in":
                clauses.append(column.in_(value))
            elif op == "is_null":
                clauses.append(column.is_(None))
        return clauses

    def build_select(self):
        if self._fields == ("*",):
            columns = list(self._model.__table__.columns)
        else:
            columns = [self._resolve_column(f)[1].label(f) for f in self._fields]

        stmt = sa_select(*columns).select_from(self._model)
        for model in self._joined_models():
            stmt = stmt.join(model)
        for clause in self._where_clauses():
            stmt = stmt.where(clause)
        for name, desc in self._order:
            _, column = self._resolve_column(name)
            stmt = stmt.order_by(column.desc() if desc else column.asc())
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        return stmt


class SqlAlchemyGateway:
    """Gateway bound to a SQLAlchemy session (defaults to the Flask-SQLAlchemy session)."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def run(self, query: TableQuery) -> list[dict]:
        try:
            if query._operation == "select":
                result = self.session.execute(query.build_select())
                return [dict(row) for row in result.mappings().all()]
            if query._operation == "insert":
                return self._insert(query)
            return self._update_or_delete(query)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GatewayError(
                f"{query._operation} on {query._name} failed: {exc.__class__.__name__}",
                table=query._name,
                operation=query._operation,
            ) from exc

    def _insert(self, query: TableQuery) -> list[dict]:
        model = query._model
        known = set(model.__table__.columns.keys())
        objects = []
        for record in query._values:
            unknown = set(record) - known
            if unknown:
                raise GatewayShapeError(f"Unknown columns for {query._name}: {sorted(unknown)}")
            objects.append(model(**record))
        self.session.add_all(objects)
        self.session.flush()
        rows = [_record(obj) for obj in objects]
        self.session.commit()
        return rows

    def _update_or_delete(self, query: TableQuery) -> list[dict]:
        model = query._model
        if query._joined_models():
            raise GatewayShapeError(f"{query._operation} cannot filter on joined tables")

        id_stmt = sa_select(model.id)
        for clause in query._where_clauses():
            id_stmt = id_stmt.where(clause)
        ids = [row[0] for row in self.session.execute(id_stmt).all()]
        if not ids:
            return []

        if query._operation == "update":
            unknown = set(query._values) - set(model.__table__.columns.keys())
            if unknown:
                raise GatewayShapeError(f"Unknown columns for {query._name}: {sorted(unknown)}")
            self.session.execute(
                sa_update(model).where(model.id.in_(ids)).values(**query._values),
                execution_options={"synchronize_session": "fetch"},
            )
        else:
            self.session.execute(
                sa_delete(model).where(model.id.in_(ids)),
                execution_options={"synchronize_session": "fetch"},
            )
        self.session.commit()
        return [{"id": i} for i in ids]
