"""Company settings lookup shared by the invoice generator and ledger posting."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.exceptions import CompanySettingsMissingError
from billing_kernel.models.accounts import CompanySettings


def get_company_settings(session: Session) -> CompanySettings:
    """
    The company settings row (the oldest one if several exist).

    Raises:
        CompanySettingsMissingError: no row has been configured.
    """
    settings = session.execute(
        select(CompanySettings).order_by(CompanySettings.created_at, CompanySettings.id).limit(1)
    ).scalar_one_or_none()
    if settings is None:
        raise CompanySettingsMissingError()
    return settings
