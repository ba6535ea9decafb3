# Overview: Read-only collaborators consumed by the store (business profile and acting user).

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


NUMBERING_SEQUENTIAL = "sequential"
NUMBERING_YEARLY = "yearly"

VALID_NUMBERING_MODES = [NUMBERING_SEQUENTIAL, NUMBERING_YEARLY]


@dataclass(frozen=True)
class BusinessProfile:
    """
    Business settings owned by the configuration collaborator.

    The store reads these (invoice numbering, default tax, currency) but
    never writes or validates them.
    """
    company_name: str = "My Business"
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    gst_number: str | None = None
    currency: str = "INR"
    invoice_prefix: str = "INV-"
    invoice_number_width: int = 3
    invoice_numbering: str = NUMBERING_SEQUENTIAL
    last_invoice_number: int = 0
    default_tax_rate_bps: int = 1000
    default_due_days: int = 14
    loyalty_cents_per_point: int = 10000

    @classmethod
    def from_config(cls, config: Mapping) -> "BusinessProfile":
        return cls(
            company_name=config.get("BUSINESS_NAME", cls.company_name),
            address=config.get("BUSINESS_ADDRESS"),
            phone=config.get("BUSINESS_PHONE"),
            email=config.get("BUSINESS_EMAIL"),
            gst_number=config.get("BUSINESS_GST_NUMBER"),
            currency=config.get("CURRENCY", cls.currency),
            invoice_prefix=config.get("INVOICE_PREFIX", cls.invoice_prefix),
            invoice_number_width=int(config.get("INVOICE_NUMBER_WIDTH", cls.invoice_number_width)),
            invoice_numbering=config.get("INVOICE_NUMBERING", cls.invoice_numbering),
            last_invoice_number=int(config.get("LAST_INVOICE_NUMBER", cls.last_invoice_number)),
            default_tax_rate_bps=int(config.get("DEFAULT_TAX_RATE_BPS", cls.default_tax_rate_bps)),
            default_due_days=int(config.get("DEFAULT_DUE_DAYS", cls.default_due_days)),
            loyalty_cents_per_point=int(config.get("LOYALTY_CENTS_PER_POINT", cls.loyalty_cents_per_point)),
        )

    def to_dict(self) -> dict:
        return {
            "company_name": self.company_name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "gst_number": self.gst_number,
            "currency": self.currency,
            "invoice_prefix": self.invoice_prefix,
            "invoice_number_width": self.invoice_number_width,
            "invoice_numbering": self.invoice_numbering,
            "default_tax_rate_bps": self.default_tax_rate_bps,
            "default_due_days": self.default_due_days,
        }


@dataclass(frozen=True)
class Actor:
    """Current user as supplied by the authentication collaborator."""
    id: str
    display_name: str = ""
    role: str = "owner"
    is_authenticated: bool = True


ANONYMOUS = Actor(id="anonymous", display_name="Anonymous", role="staff", is_authenticated=False)
