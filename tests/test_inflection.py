from utils.inflection import InflectPluralizer


def test_regular_words():
    p = InflectPluralizer()
    assert p.singular("accounts") == "account"
    assert p.singular("addresses") == "address"
    assert p.plural("account") == "accounts"


def test_unknown_singular_is_returned_unchanged():
    assert InflectPluralizer().singular("summary") == "summary"


def test_irregular_rule_works_both_ways():
    p = InflectPluralizer()
    p.add_irregular_rule("zorb", "zorbian")
    assert p.plural("zorb") == "zorbian"
    assert p.singular("zorbian") == "zorb"


def test_uncountable_words_do_not_change():
    p = InflectPluralizer()
    p.add_uncountable_rule("news")
    assert p.singular("news") == "news"
    assert p.plural("news") == "news"


def test_latest_regex_rule_wins():
    p = InflectPluralizer()
    p.add_plural_rule(r"^(blorp)$", r"\1s")
    p.add_plural_rule(r"^(blorp)$", r"\1i")
    p.add_singular_rule(r"^(blorp)i$", r"\1")
    assert p.plural("blorp") == "blorpi"
    assert p.singular("blorpi") == "blorp"


def test_rules_are_per_instance():
    first = InflectPluralizer()
    first.add_irregular_rule("zorb", "zorbian")
    assert InflectPluralizer().singular("zorbian") != "zorb"
