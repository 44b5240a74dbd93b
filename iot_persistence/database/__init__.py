"""
Database layer: connection pool, ORM schema, DAOs and the persistence façade.

Import concrete modules directly (``iot_persistence.database.manager``, ...);
this package keeps no re-exports so that the executor and metrics modules can
be imported without pulling in the façade.
"""
