import logging

from django.db import transaction

from core.models import SequenceCounter

logger = logging.getLogger(__name__)

BILL_SEQUENCE = "bill"
ORDER_SEQUENCE = "order"
PURCHASE_SEQUENCE = "purchase"
PRODUCT_SEQUENCE = "product"


def next_sequence_value(name, start=1):
    """
    Reserve the next number of a named sequence.

    The counter row stays locked until the caller's transaction ends, so two
    concurrent callers can never receive the same value. The increment rolls
    back with the caller, so a failed bill does not consume a number.
    """
    with transaction.atomic():
        counter, created = SequenceCounter.objects.select_for_update().get_or_create(
            name=name,
            defaults={"value": max(int(start), 1) - 1},
        )
        if created:
            logger.info("sequence_created name=%s start=%s", name, start)
        counter.value += 1
        counter.save(update_fields=["value", "updated_at"])
        return counter.value
