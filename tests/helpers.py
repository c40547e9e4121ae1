from decimal import Decimal

SECRET_KEY = "sk_test_checkout"


def shipping_address(**overrides) -> dict:
    address = {
        "first_name": "Ada",
        "last_name": "Obi",
        "email": "ada@example.com",
        "phone": "+2348012345678",
        "address": "12 Admiralty Way",
        "city": "Lekki",
        "state": "Lagos",
    }
    address.update(overrides)
    return address


def amount(value) -> Decimal:
    """Money fields come back as JSON strings; compare them as Decimals."""
    return Decimal(str(value))

MONNIFY_API_KEY = "MK_TEST_checkout"
MONNIFY_SECRET = "monnify_test_secret"
MONNIFY_CONTRACT = "1234567890"
