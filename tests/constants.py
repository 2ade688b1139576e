from datetime import datetime, timezone

ADMIN_UID = "admin-test-uid"
CUSTOMER_UID = "customer-test-uid"
BASE_URL = "http://test"

ADMIN_TOKEN = "admin-token"
CUSTOMER_TOKEN = "customer-token"
VIP_TOKEN = "vip-token"

# A Wednesday, noon UTC
NOW = datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc)
