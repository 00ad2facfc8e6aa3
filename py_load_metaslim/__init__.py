"""Curate and compare clinical-trial cohorts for weight-loss drugs."""

__version__ = "0.1.0"
