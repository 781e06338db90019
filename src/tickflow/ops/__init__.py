"""Operator expressions."""

from tickflow.ops.expr import ConstExpr, Expr, JoinExpr, MapExpr, project, select

__all__ = ["ConstExpr", "Expr", "JoinExpr", "MapExpr", "project", "select"]
