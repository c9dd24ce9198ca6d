"""
TrustPort transfer engine.

Recipient resolution, tiered step-up verification (PIN / OTP) and atomic
balance settlement for wallet, QR and bank transfers.
"""

__version__ = "1.0.0"
