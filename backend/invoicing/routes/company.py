"""Company Routes

Endpoints:
- GET /api/company - Current user's company
- PUT /api/company - Update company settings
- GET /api/company/bank-accounts - Active bank accounts, default first
- POST /api/company/bank-accounts - Add a bank account
- PUT /api/company/bank-accounts/{account_id} - Update a bank account
- DELETE /api/company/bank-accounts/{account_id} - Deactivate a bank account
"""

from fastapi import APIRouter, HTTPException, Depends
import logging

from invoicing.errors import GENERIC_ERROR, http_error
from invoicing.models.company import CompanyUpdate, BankAccountCreate, BankAccountUpdate
from invoicing.services.company_service import company_service
from middleware import get_current_company

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/company", tags=["Company"])


@router.get("")
async def get_company(company: dict = Depends(get_current_company)):
    return company


@router.put("")
async def update_company(data: CompanyUpdate, company: dict = Depends(get_current_company)):
    try:
        return await company_service.update(company, data)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Company update failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/bank-accounts")
async def list_bank_accounts(company: dict = Depends(get_current_company)):
    accounts = await company_service.list_bank_accounts(company["company_id"])
    return {"bank_accounts": accounts}


@router.post("/bank-accounts", status_code=201)
async def create_bank_account(data: BankAccountCreate, company: dict = Depends(get_current_company)):
    try:
        return await company_service.create_bank_account(company["company_id"], data)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Bank account create failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.put("/bank-accounts/{account_id}")
async def update_bank_account(
    account_id: str,
    data: BankAccountUpdate,
    company: dict = Depends(get_current_company),
):
    try:
        return await company_service.update_bank_account(company["company_id"], account_id, data)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Bank account update failed for {account_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.delete("/bank-accounts/{account_id}")
async def delete_bank_account(account_id: str, company: dict = Depends(get_current_company)):
    try:
        await company_service.delete_bank_account(company["company_id"], account_id)
        return {"message": "საბანკო ანგარიში წაიშალა"}
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Bank account delete failed for {account_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
