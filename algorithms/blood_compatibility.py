"""
Blood Type Compatibility Helper
Determines which donor blood types can give to which recipient blood types
"""

from algorithms.exceptions import ValidationError

BLOOD_TYPES = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')

UNIVERSAL_RECIPIENT = 'AB+'
UNIVERSAL_DONOR = 'O-'

# Recipient blood type -> donor blood types it can receive from
CAN_RECEIVE_FROM = {
    'A+': frozenset(['A+', 'A-', 'O+', 'O-']),
    'A-': frozenset(['A-', 'O-']),
    'B+': frozenset(['B+', 'B-', 'O+', 'O-']),
    'B-': frozenset(['B-', 'O-']),
    'AB+': frozenset(['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']),  # Universal recipient
    'AB-': frozenset(['A-', 'B-', 'AB-', 'O-']),
    'O+': frozenset(['O+', 'O-']),
    'O-': frozenset(['O-']),  # Only from itself
}

# Donor blood type -> recipient blood types it can give to
CAN_DONATE_TO = {
    donor_type: frozenset(
        recipient for recipient, donors in CAN_RECEIVE_FROM.items()
        if donor_type in donors
    )
    for donor_type in BLOOD_TYPES
}


def validate_blood_type(blood_type):
    """
    Normalise and check a blood type string.

    Raises:
        ValidationError: if the value is not one of the 8 ABO/Rh types
    """
    normalized = blood_type.strip().upper() if isinstance(blood_type, str) else blood_type
    if normalized not in CAN_RECEIVE_FROM:
        raise ValidationError(f"Unknown blood type: {blood_type!r}", blood_type=blood_type)
    return normalized


def get_compatible_donors(recipient_blood_type):
    """
    Get the blood types that can donate to a recipient

    Args:
        recipient_blood_type: Recipient's blood type (e.g., 'A+')

    Returns:
        frozenset of compatible donor blood types
    """
    return CAN_RECEIVE_FROM[validate_blood_type(recipient_blood_type)]


def get_compatible_recipients(donor_blood_type):
    """
    Get the blood types that can receive from a donor

    Args:
        donor_blood_type: Donor's blood type

    Returns:
        frozenset of compatible recipient blood types
    """
    return CAN_DONATE_TO[validate_blood_type(donor_blood_type)]


def is_compatible(donor_blood_type, recipient_blood_type):
    """
    Check if a donor blood type can give to a recipient blood type.

    Unknown types are simply not compatible; use get_compatible_donors()
    when an unknown type should abort the search.
    """
    donors = CAN_RECEIVE_FROM.get(recipient_blood_type)
    if donors is None:
        return False
    return donor_blood_type in donors


def compatibility_summary(recipient_blood_type):
    requested = validate_blood_type(recipient_blood_type)
    compatible = CAN_RECEIVE_FROM[requested]
    return {
        'requested': requested,
        'compatible': sorted(compatible, key=BLOOD_TYPES.index),
        'count': len(compatible),
        'is_universal_recipient': requested == UNIVERSAL_RECIPIENT,
        'is_universal_donor': requested == UNIVERSAL_DONOR,
    }
