from ninja_extra.throttling import AnonRateThrottle, UserRateThrottle


class AnonDefaultThrottle(AnonRateThrottle):
    rate = "60/min"


class UserDefaultThrottle(UserRateThrottle):
    rate = "100/min"


class PurchaseThrottle(UserRateThrottle):
    rate = "30/min"


class ScanThrottle(UserRateThrottle):
    # A single door scanner can redeem a ticket every second or so.
    rate = "120/min"
