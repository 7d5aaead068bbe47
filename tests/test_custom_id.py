"""Tests for the component custom-id wire format."""
import pytest

from pokebot.custom_id import MAX_LENGTH, CustomId, make
from pokebot.errors import MalformedCustomId


def test_parse_navigation_id():
    """Navigation ids carry the page they were rendered from."""
    cid = CustomId.parse("sell_duplicates:abc123:next:3")
    assert cid.flow == "sell_duplicates"
    assert cid.session_id == "abc123"
    assert cid.verb == "next"
    assert cid.page_arg() == 3


def test_args_are_percent_encoded():
    """Separators inside an argument survive the trip through a custom id."""
    raw = make("shop", "abc", "pick", "a:b c")
    assert raw == "shop:abc:pick:a%3Ab%20c"
    assert CustomId.parse(raw).arg == "a:b c"


def test_id_without_arg():
    cid = CustomId.parse("packs:0f0f:cancel")
    assert cid.arg is None
    assert cid.action_key == "cancel"


def test_select_and_pick_share_action_key():
    """Choosing any item counts as the same in-flight action."""
    assert CustomId.parse("packs:ab:pick:x").action_key == "select"
    assert CustomId.parse("packs:ab:select:0").action_key == "select"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "shop_buy_rare",
        "shop:abc",
        "shop:abc:explode",
        "Shop:abc:next:1",
        "shop:XYZ:next:1",
        "shop:abc:next:1:extra",
        "shop:abc:next:" + "1" * MAX_LENGTH,
    ],
)
def test_malformed_ids_are_rejected(raw):
    """Anything outside the grammar raises MalformedCustomId."""
    with pytest.raises(MalformedCustomId):
        CustomId.parse(raw)


def test_page_arg_requires_integer():
    with pytest.raises(MalformedCustomId):
        CustomId.parse("shop:abc:next:notanumber").page_arg()


def test_encode_rejects_unknown_verb_and_overlong_ids():
    with pytest.raises(MalformedCustomId):
        make("shop", "abc", "explode")
    with pytest.raises(MalformedCustomId):
        make("shop", "abc", "pick", "x" * MAX_LENGTH)
