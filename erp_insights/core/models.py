from sqlalchemy import Column, Integer, String, TIMESTAMP
from sqlalchemy.sql import func

from erp_insights.core.database import Base


# =========================
# User
# =========================
class User(Base):
    """
    Dashboard user.

    The id doubles as the ERP user code (CODUSUARIO): non-admin users only
    see the leads they own in the ERP. seller_code (CODVEND) limits the client
    search of non-admin users to their own portfolio.
    """

    __tablename__ = "users_table"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, server_default="user")
    seller_code = Column(Integer, nullable=True)

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
