"""
iot_persistence Test Suite
==========================

Test Organization
-----------------
- tests/unit/          : Fast tests with mocks or no database at all
- tests/integration/   : SQLite file store and PostgreSQL (testcontainers)

Testing Philosophy
------------------
- Unit tests: fast, isolated, no external services
- Integration tests: real SQL through the same pool the manager uses
- Use pytest markers to select: integration, database, postgres, slow
- Follow AAA pattern: Arrange, Act, Assert
"""
