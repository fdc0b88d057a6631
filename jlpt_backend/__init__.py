"""
JLPT Assessment Backend

Backend for JLPT exam preparation: composes tests out of typed question
sets, assembles leveled and shuffled question batches for placement and
lesson-review sessions, and tracks each user's attempts.
"""

__version__ = "0.1.0"
