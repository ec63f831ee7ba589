"""
Passkey Ceremonies

Registration and authentication begin/finish orchestration.
"""

from passkey.ceremony.authentication import AuthenticationCeremony
from passkey.ceremony.registration import RegistrationCeremony

__all__ = [
    "AuthenticationCeremony",
    "RegistrationCeremony",
]
