"""Context-building modules for gathering release metadata.

These modules talk to external sources (the GitHub API, a git clone,
the published update metadata) and hand the results to the changelog
assembler and the orchestrator in a structured form.
"""
