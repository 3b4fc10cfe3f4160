"""
Screenshot problem solver.

This package classifies captured problem statements, extracts and verifies
structured problem data, fans out concurrent solution attempts, and picks
a winner while streaming progress to an observer.
"""
