"""
Utility functions for the family finance assistant.
"""

from famfin.utils.encryption import decrypt_optional, decrypt_value, encrypt_optional, encrypt_value
from famfin.utils.masking import mask_account_number, mask_bsb

__all__ = [
    "encrypt_value",
    "decrypt_value",
    "encrypt_optional",
    "decrypt_optional",
    "mask_account_number",
    "mask_bsb",
]
