"""
Finance enumerations.

Values are the lowercase codes exposed through the API and CSV exports.
"""

import enum


class AdminRole(str, enum.Enum):
    """Back-office operator roles."""
    SUPER_ADMIN = "super_admin"
    FINANCE = "finance"
    OPERATOR = "operator"


class SettlementType(str, enum.Enum):
    MERCHANT = "merchant"
    DISTRIBUTOR = "distributor"


class SettlementStatus(str, enum.Enum):
    """Settlement lifecycle: PENDING -> PROCESSING -> COMPLETED, never backwards."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WithdrawalType(str, enum.Enum):
    WALLET = "wallet"  # Cash out of the user wallet balance
    COMMISSION = "commission"  # Cash out of distributor commission


class WithdrawalStatus(str, enum.Enum):
    """
    Withdrawal audit lifecycle.

    PENDING -> APPROVED -> PROCESSING -> SUCCESS, and PENDING -> REJECTED.
    """
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    SUCCESS = "success"
    REJECTED = "rejected"


class WithdrawTo(str, enum.Enum):
    WECHAT = "wechat"
    ALIPAY = "alipay"
    BANK = "bank"


class WalletTransactionType(str, enum.Enum):
    RECHARGE = "recharge"
    CONSUME = "consume"
    REFUND = "refund"
    WITHDRAW = "withdraw"
    DEPOSIT = "deposit"  # Deposit frozen
    RETURN_DEPOSIT = "return_deposit"  # Deposit returned


class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    SETTLED = "settled"
    CANCELLED = "cancelled"


class DistributorStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DISABLED = "disabled"


class MerchantStatus(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


class OrderType(str, enum.Enum):
    RENTAL = "rental"
    HOTEL = "hotel"
    MALL = "mall"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    IN_USE = "in_use"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDING = "refunding"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    WECHAT = "wechat"
    ALIPAY = "alipay"
    BALANCE = "balance"


class PaymentChannel(str, enum.Enum):
    MINIPROGRAM = "miniprogram"
    H5 = "h5"
    NATIVE = "native"
    APP = "app"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CLOSED = "closed"
    REFUNDED = "refunded"


class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


# Orders in these states never produced revenue.
NON_REVENUE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.CANCELLED)
