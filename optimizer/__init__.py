"""Optimization engine used by the class placement problem."""

from .annealing import AnnealConfig, AnnealResult, accept_probability, anneal

__all__ = ["AnnealConfig", "AnnealResult", "accept_probability", "anneal"]
