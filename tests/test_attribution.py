"""
Attribution matcher tests - id lookup, name containment tiers, traffic source inference
"""
from app.models import AdLevel, AttributionKind
from app.services.attribution import (
    candidate_fields,
    extract_attribution_token,
    field_contains_name,
    infer_traffic_source,
    match,
    normalize_token,
)
from conftest import make_entity, make_order


class TestNormalization:
    """Token normalization and containment"""

    def test_separators_and_case(self):
        assert normalize_token("Summer-Sale") == "summersale"
        assert normalize_token("summer_sale") == "summersale"
        assert normalize_token(" Summer Sale ") == "summersale"
        assert normalize_token(None) == ""

    def test_field_contains_name_direction(self):
        """The order field must contain the entity name, not the reverse"""
        assert field_contains_name("summer_sale_video_1", "Summer Sale")
        assert not field_contains_name("sale", "Summer Sale")

    def test_short_names_never_match(self):
        assert not field_contains_name("ab_campaign", "AB")


class TestTokenExtraction:
    """utm_content from note attributes, else from the landing URL"""

    def test_note_attribute_first(self):
        order = make_order(
            notes={"utm_content": "from_notes"},
            landing_site="/?utm_content=from_landing",
        )
        assert extract_attribution_token(order) == "from_notes"

    def test_landing_site_query(self):
        order = make_order(landing_site="/products/tee?utm_source=facebook&utm_content=120001")
        assert extract_attribution_token(order) == "120001"

    def test_no_token(self):
        assert extract_attribution_token(make_order()) is None

    def test_candidate_fields_are_normalized(self):
        order = make_order(tags="Diwali-Blast, VIP", notes={"utm_campaign": "Q4 Push"})
        fields = candidate_fields(order)
        assert "diwaliblast,vip" in fields
        assert "q4push" in fields


class TestMatch:
    """Order -> ad / ad set / unattributed"""

    def test_numeric_token_matches_id(self):
        ads = [make_entity("111", "Other"), make_entity("123456", "Summer Sale", parent_id="900")]
        result = match(make_order(notes={"utm_content": "123456"}), ads)
        assert result.kind == AttributionKind.AD
        assert result.entity_id == "123456"
        assert result.parent_id == "900"
        assert result.matched_on == "id"

    def test_numeric_miss_does_not_fall_back_to_names(self):
        """A numeric token with no id match is unattributed"""
        ads = [make_entity("999", "123456 promo")]
        result = match(make_order(notes={"utm_content": "123456"}), ads)
        assert result.kind == AttributionKind.UNATTRIBUTED
        assert result.token == "123456"

    def test_name_match_from_token(self):
        adsets = [make_entity("A1", "Summer-Sale", level=AdLevel.ADSET, spend="1000")]
        result = match(make_order(notes={"utm_content": "summer_sale"}), adsets)
        assert result.kind == AttributionKind.ADSET
        assert result.entity_id == "A1"
        assert result.matched_on == "name"

    def test_longest_name_wins(self):
        ads = [make_entity("1", "Sale"), make_entity("2", "Summer Sale")]
        result = match(make_order(notes={"utm_content": "summer_sale_reel"}), ads)
        assert result.entity_id == "2"

    def test_equal_length_ties_keep_input_order(self):
        ads = [make_entity("1", "Promo A"), make_entity("2", "Promo B")]
        result = match(make_order(tags="promo_a promo_b"), ads)
        assert result.entity_id == "1"

    def test_parent_name_tier(self):
        """Ad names miss, ad set name hits: first ad of that ad set"""
        ads = [
            make_entity("1", "Creative One", parent_id="S1", parent_name="Diwali Blast"),
            make_entity("2", "Creative Two", parent_id="S1", parent_name="Diwali Blast"),
        ]
        result = match(make_order(tags="diwali-blast"), ads)
        assert result.entity_id == "1"
        assert result.matched_on == "parent_name"

    def test_campaign_name_tier(self):
        ads = [make_entity("1", "Creative", parent_name="Broad", campaign_name="Monsoon Launch")]
        result = match(make_order(notes={"utm_campaign": "monsoon_launch"}), ads)
        assert result.matched_on == "campaign_name"

    def test_no_match_is_unattributed_with_source(self):
        order = make_order(referring_site="https://www.instagram.com/")
        result = match(order, [make_entity("1", "Summer Sale")])
        assert result.kind == AttributionKind.UNATTRIBUTED
        assert result.source == "Instagram"
        assert result.entity_id is None

    def test_idempotent(self):
        """Same inputs, same result"""
        ads = [make_entity("1", "Sale"), make_entity("2", "Summer Sale")]
        order = make_order(notes={"utm_content": "summer_sale"})
        assert match(order, ads) == match(order, ads)


class TestInferTrafficSource:
    """Coarse source labels for unattributed orders"""

    def test_utm_source_wins(self):
        order = make_order(notes={"utm_source": "newsletter"}, referring_site="https://google.com")
        assert infer_traffic_source(order) == "newsletter"

    def test_referrer_hosts(self):
        assert infer_traffic_source(make_order(referring_site="https://m.facebook.com/")) == "Facebook"
        assert infer_traffic_source(make_order(referring_site="https://www.google.co.in/")) == "Google"
        assert infer_traffic_source(make_order(referring_site="https://t.co/xyz")) == "Twitter/X"
        assert infer_traffic_source(make_order(referring_site="https://duckduckgo.com/")) == "Other"

    def test_no_referrer_is_direct(self):
        assert infer_traffic_source(make_order()) == "direct"
