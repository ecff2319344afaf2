"""Service layer of the test matrix."""

from .matrix_service import MatrixStatistics, StatusCounts, TestMatrixService

__all__ = ["MatrixStatistics", "StatusCounts", "TestMatrixService"]
