from ucp_framework.models import (
    Buyer,
    CatalogProduct,
    CheckoutStatus,
    Message,
    MessageSeverity,
    MessageType,
    Payment,
    PaymentPolicy,
)
from ucp_framework.resolver import price_line_item
from ucp_framework.status import evaluate_status
from ucp_framework.totals import compute_totals

TEE = CatalogProduct(id=1, slug="classic-tee", name="Classic Tee", price=2999)
BUYER = Buyer(email="ada@example.com", first_name="Ada", last_name="Lovelace")


def _totals(line_items, rate):
    return [t.model_dump(mode="json") for t in compute_totals(line_items, rate)]


def test_totals_without_tax_omit_tax_line():
    line_item = price_line_item(1, TEE, 2)
    assert _totals([line_item], 0) == [
        {"type": "subtotal", "amount": 5998},
        {"type": "total", "amount": 5998},
    ]


def test_totals_with_tax():
    line_item = price_line_item(1, TEE, 2)
    assert _totals([line_item], 0.08) == [
        {"type": "subtotal", "amount": 5998},
        {"type": "tax", "amount": 480},
        {"type": "total", "amount": 6478},
    ]


def test_totals_are_a_pure_function_of_line_items():
    line_items = [price_line_item(1, TEE, 3)]
    assert _totals(line_items, 0.07) == _totals(line_items, 0.07)
    assert _totals([], 0) == [{"type": "subtotal", "amount": 0}, {"type": "total", "amount": 0}]


def test_discount_price_wins_over_list_price():
    tote = CatalogProduct(id=3, slug="tote", name="Tote", price=1800, discount_price=1500)
    line_item = price_line_item(1, tote, 2)
    assert line_item.item.price == 1500
    assert line_item.subtotal == 3000


def test_empty_cart_without_buyer_is_incomplete():
    evaluation = evaluate_status(None, [])
    assert evaluation.status == CheckoutStatus.INCOMPLETE
    assert [m.code for m in evaluation.messages] == [
        "empty_cart",
        "missing_buyer_email",
        "missing_buyer_first_name",
        "missing_buyer_last_name",
    ]
    assert evaluation.messages[1].path == "$.buyer.email"


def test_complete_inputs_are_ready():
    evaluation = evaluate_status(BUYER, [price_line_item(1, TEE, 1)])
    assert evaluation.status == CheckoutStatus.READY_FOR_COMPLETE
    assert evaluation.messages == []


def test_line_item_errors_suppress_empty_cart():
    item_error = Message.error("item_not_found", "Product \"x\" was not found.", path="$.line_items[0].item.id")
    evaluation = evaluate_status(BUYER, [], [item_error])
    assert [m.code for m in evaluation.messages] == ["item_not_found"]
    assert evaluation.status == CheckoutStatus.INCOMPLETE


def test_buyer_and_payment_errors_do_not_hide_empty_cart():
    payment_error = Message.error("invalid_payment", "Input should be a valid list", path="$.payment.instruments")
    evaluation = evaluate_status(BUYER, [], [payment_error])
    assert [m.code for m in evaluation.messages] == ["invalid_payment", "empty_cart"]
    assert evaluation.status == CheckoutStatus.INCOMPLETE


def test_warnings_do_not_block():
    warning = Message(type=MessageType.WARNING, code="unrecognized_field", content="ignored")
    evaluation = evaluate_status(BUYER, [price_line_item(1, TEE, 1)], [warning])
    assert evaluation.status == CheckoutStatus.READY_FOR_COMPLETE
    assert evaluation.messages == [warning]


def test_buyer_fields_can_escalate_instead_of_block():
    evaluation = evaluate_status(
        Buyer(email="ada@example.com"),
        [price_line_item(1, TEE, 1)],
        buyer_field_severity=MessageSeverity.REQUIRES_BUYER_INPUT,
    )
    assert evaluation.status == CheckoutStatus.REQUIRES_ESCALATION
    assert {m.code for m in evaluation.messages} == {"missing_buyer_first_name", "missing_buyer_last_name"}


def test_strict_policy_requires_usable_instrument():
    line_items = [price_line_item(1, TEE, 1)]
    evaluation = evaluate_status(BUYER, line_items, payment_policy=PaymentPolicy.STRICT)
    assert evaluation.status == CheckoutStatus.REQUIRES_ESCALATION
    assert [m.code for m in evaluation.messages] == ["payment_required"]

    payment = Payment.model_validate(
        {
            "instruments": [
                {
                    "id": "pi_1",
                    "handler_id": "mock_handler_1",
                    "selected": True,
                    "credential": {"type": "token", "token": "tok_1"},
                }
            ]
        }
    )
    evaluation = evaluate_status(BUYER, line_items, payment=payment, payment_policy=PaymentPolicy.STRICT)
    assert evaluation.status == CheckoutStatus.READY_FOR_COMPLETE
