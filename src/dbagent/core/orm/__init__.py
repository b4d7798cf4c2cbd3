"""SQLAlchemy bridge used for PostgreSQL-backed schedule stores.

Requires the ``[postgres]`` extra (``sqlalchemy`` + ``psycopg``).
"""
