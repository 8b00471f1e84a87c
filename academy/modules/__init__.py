"""
Feature modules: progression, achievements, leaderboard and stats.

Each module owns one service; `academy.engine.AcademyEngine` wires them
over a single store.
"""
