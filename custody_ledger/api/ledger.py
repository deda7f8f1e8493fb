"""
Ledger operation endpoints
"""

from fastapi import APIRouter, Depends

from .deps import LedgerSystem, get_caller, get_ledger_system
from .schemas import (
    AmountRequest, BalanceResponse, CapacityResponse, HistoryResponse,
    OperationResponse, StatsResponse
)


router = APIRouter()


@router.post("/deposit", response_model=OperationResponse)
async def deposit(
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Credit value the caller has transferred into custody"""
    return system.custodian.deposit(caller, request.amount).to_dict()


@router.post("/receive", response_model=OperationResponse)
async def receive(
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Credit value that arrived without an explicit operation"""
    return system.custodian.receive(caller, request.amount).to_dict()


@router.post("/withdraw", response_model=OperationResponse)
async def withdraw(
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Withdraw value from the caller's balance"""
    return system.custodian.withdraw(caller, request.amount).to_dict()


@router.get("/balance/{principal}", response_model=BalanceResponse)
async def get_balance(principal: str, system: LedgerSystem = Depends(get_ledger_system)):
    return {"principal": principal, "balance": system.custodian.balance_of(principal)}


@router.get("/capacity", response_model=CapacityResponse)
async def get_capacity(system: LedgerSystem = Depends(get_ledger_system)):
    return {
        "capacity_limit": system.ledger.capacity_limit,
        "remaining_capacity": system.custodian.remaining_capacity()
    }


@router.get("/stats", response_model=StatsResponse)
async def get_stats(system: LedgerSystem = Depends(get_ledger_system)):
    return system.custodian.global_stats().to_dict()


@router.get("/history/{principal}", response_model=HistoryResponse)
async def get_history(
    principal: str,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Deposit and withdrawal history; caller must be the principal or the owner"""
    history = system.custodian.history_of(caller, principal)
    return {
        "principal": history.principal,
        "deposits": list(history.deposits),
        "withdrawals": list(history.withdrawals)
    }
