from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from spendflow.db.base import Base, TimestampMixin, UUIDMixin

COUNTRY_CURRENCIES = {
    "india": "INR",
    "us": "USD",
    "uk": "GBP",
    "japan": "JPY",
    "australia": "AUD",
    "canada": "CAD",
    "germany": "EUR",
    "france": "EUR",
    "spain": "EUR",
    "italy": "EUR",
}


def currency_for_country(country: str, fallback: str = "USD") -> str:
    return COUNTRY_CURRENCIES.get(country.strip().lower(), fallback)


class Company(Base, UUIDMixin, TimestampMixin):
    """A tenant. Users and expenses reference it; nothing crosses company boundaries."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
