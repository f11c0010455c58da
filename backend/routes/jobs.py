import logging

from fastapi import APIRouter, Depends, HTTPException

from database import get_db
from utils.security import require_cron_secret
from workers.payout_dispatch_job import dispatch_pending_payouts
from workers.platform_invoice_job import generate_platform_invoices
from workers.weekly_payout_job import execute_weekly_payouts

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/jobs",
    tags=["Jobs"],
    dependencies=[Depends(require_cron_secret)],
)


async def _run(job_name: str, job, db) -> dict:
    try:
        summary = await job(db)
    except HTTPException as e:
        logger.error("JOB_FAILED job=%s detail=%s", job_name, e.detail)
        raise
    except Exception:
        logger.exception("JOB_FAILED job=%s", job_name)
        raise HTTPException(500, f"{job_name} failed")
    return {"ok": True, **summary}


# =====================================================
# WEEKLY SETTLEMENT (triggered by external cron)
# =====================================================

@router.api_route("/generate-platform-invoices", methods=["GET", "POST"])
async def run_generate_platform_invoices(db=Depends(get_db)):
    return await _run("generate_platform_invoices", generate_platform_invoices, db)


@router.api_route("/execute-weekly-payouts", methods=["GET", "POST"])
async def run_execute_weekly_payouts(db=Depends(get_db)):
    return await _run("execute_weekly_payouts", execute_weekly_payouts, db)


@router.api_route("/dispatch-payouts", methods=["GET", "POST"])
async def run_dispatch_payouts(db=Depends(get_db)):
    return await _run("dispatch_payouts", dispatch_pending_payouts, db)
