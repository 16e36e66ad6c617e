from .accounts import User, Sponsor, Merchant, Beneficiary, SessionToken
from .vouchers import Voucher, MerchantVoucher, VoucherType, VoucherStatus, CodeGenerationMethod
from .transactions import Transaction

__all__ = [
    'User', 'Sponsor', 'Merchant', 'Beneficiary', 'SessionToken',
    'Voucher', 'MerchantVoucher', 'VoucherType', 'VoucherStatus', 'CodeGenerationMethod',
    'Transaction',
]
