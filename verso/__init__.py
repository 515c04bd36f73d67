"""
Verso — artifact version control.

Content-addressed history for text artifacts: numbered versions with a
single active version per artifact, branches and tags, deterministic
line diffs, three-way merge and an append-only change log.

Entry points:
    verso.engine.runtime.VersoRuntime   — wire everything from verso.yaml
    verso.api.handlers.ArtifactAPI      — request layer
    verso.vcs                           — pure diff / merge / hashing
"""

__version__ = "1.0.0"
__all__ = ["api", "db", "engine", "security", "vcs", "versioning"]
