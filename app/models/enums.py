from enum import Enum

class UserRole(str, Enum):
    CITIZEN = "citizen"
    ENFORCER = "enforcer"
    ADMIN = "admin"

class VehicleType(str, Enum):
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    TRUCK = "truck"
    BUS = "bus"
    TRICYCLE = "tricycle"
    OTHER = "other"

class ViolationType(str, Enum):
    SPEEDING = "speeding"
    RECKLESS_DRIVING = "reckless_driving"
    ILLEGAL_PARKING = "illegal_parking"
    NO_LICENSE_PLATE = "no_license_plate"
    EXPIRED_REGISTRATION = "expired_registration"
    NO_DRIVERS_LICENSE = "no_drivers_license"
    DRIVING_UNDER_INFLUENCE = "driving_under_influence"
    DISREGARDING_TRAFFIC_SIGNALS = "disregarding_traffic_signals"
    ILLEGAL_OVERTAKING = "illegal_overtaking"
    OVERLOADING = "overloading"
    NO_HELMET = "no_helmet"
    NO_SEATBELT = "no_seatbelt"
    ILLEGAL_TURN = "illegal_turn"
    BLOCKING_INTERSECTION = "blocking_intersection"
    OTHER = "other"

class ViolationStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    # Query-only values: OVERDUE is derived from the payment deadline and
    # DISPUTED from the dispute sub-state; neither is ever stored.
    DISPUTED = "disputed"
    DISMISSED = "dismissed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

class DisputeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    DISPUTED = "disputed"

class PaymentMethod(str, Enum):
    GCASH = "gcash"
    MAYA = "maya"
    PAYMONGO = "paymongo"
    DRAGONPAY = "dragonpay"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    OTHER = "other"

class NotificationType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

class ReferenceKind(str, Enum):
    OVR = "OVR"
    CITATION = "CIT"
    PAYMENT = "PAY"
    RECEIPT = "RCP"
