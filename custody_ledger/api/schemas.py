"""
Pydantic schemas for API requests and responses
"""

from typing import List
from pydantic import BaseModel, Field


class AmountRequest(BaseModel):
    amount: int = Field(..., description="Amount in the smallest value unit")


class OperationResponse(BaseModel):
    operation_id: str
    operation: str
    principal: str
    amount: int
    balance: int


class BalanceResponse(BaseModel):
    principal: str
    balance: int


class CapacityResponse(BaseModel):
    capacity_limit: int
    remaining_capacity: int


class StatsResponse(BaseModel):
    total_deposit_operations: int
    total_withdraw_operations: int
    held_balance: int


class HistoryResponse(BaseModel):
    principal: str
    deposits: List[int]
    withdrawals: List[int]
