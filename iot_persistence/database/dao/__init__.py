from iot_persistence.database.dao.base import BaseDao
from iot_persistence.database.dao.redeem_dao import RedeemDao
from iot_persistence.database.dao.reporting_dao import ReportingDao
from iot_persistence.database.dao.statement_dao import StatementDao
from iot_persistence.database.dao.user_dao import UserDao

__all__ = ["BaseDao", "UserDao", "ReportingDao", "RedeemDao", "StatementDao"]
