from settingstore.namespace import Namespace, derive_namespace, make_cache_key


def test_namespace_is_deterministic():
    assert derive_namespace("sqlite:/srv/app.db#settings") == derive_namespace("sqlite:/srv/app.db#settings")


def test_distinct_identities_get_distinct_namespaces():
    a = derive_namespace("sqlite:/srv/app.db#settings")
    b = derive_namespace("sqlite:/srv/app.db#custom_settings")
    assert a != b


def test_prefix_is_applied():
    assert derive_namespace("x", prefix="myapp.").startswith("myapp.")


def test_keys_never_collide_across_namespaces():
    # identities chosen so naive "<identity>.<key>" concatenation would collide
    a = make_cache_key(derive_namespace("settings.a"), "b.c")
    b = make_cache_key(derive_namespace("settings.a.b"), "c")
    assert a != b


def test_slug_is_readable():
    ns = derive_namespace("sqlite:/srv/app.db#Custom-Settings", prefix="p.")
    assert ns.startswith("p.custom_settings.")


def test_namespace_dataclass():
    ns = Namespace("sqlite:/srv/app.db#settings", prefix="test_settings.")
    assert ns.key_for("theme") == f"{ns.name}:theme"
    assert ns.name == derive_namespace("sqlite:/srv/app.db#settings", "test_settings.")
