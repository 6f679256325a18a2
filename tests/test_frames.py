import types

from driver.frames import discover_payment_frame, payment_frames
from driver.surface import FrameSurface, PageSurface
from tests.fakes import FakeSurface


def _frame(url: str, name: str = "") -> FakeSurface:
    return FakeSurface(kind="frame", url=url, name=name)


def test_prefers_first_matching_frame():
    analytics = _frame("https://analytics.example/pixel")
    stripe = _frame("https://js.stripe.com/v3/elements-inner-card", "__privateStripeFrame1")
    other = _frame("https://payments.example/hosted")
    page = FakeSurface(url="https://www.example.test/billing", children=[analytics, stripe, other])

    assert discover_payment_frame(page) is stripe
    assert payment_frames(page) == [stripe, other]


def test_matches_on_frame_name_case_insensitively():
    framed = _frame("https://cdn.example/embed", "CardNumberFrame")
    page = FakeSurface(children=[framed])

    assert discover_payment_frame(page) is framed


def test_falls_back_to_page_without_matching_frame():
    page = FakeSurface(children=[_frame("https://ads.example/slot", "ad")])

    assert discover_payment_frame(page) is page


def test_custom_markers():
    adyen = _frame("https://checkoutshopper.adyen.com/securedfields")
    page = FakeSurface(children=[adyen])

    assert discover_payment_frame(page) is page
    assert discover_payment_frame(page, url_markers=("adyen",), name_markers=()) is adyen


def test_page_surface_excludes_main_frame():
    main = types.SimpleNamespace(url="https://www.example.test/billing", name="")
    child = types.SimpleNamespace(url="https://js.stripe.com/v3", name="stripe", child_frames=[])
    page = types.SimpleNamespace(url=main.url, main_frame=main, frames=[main, child])

    surface = PageSurface(page)
    frames = surface.frames()

    assert len(frames) == 1
    assert isinstance(frames[0], FrameSurface)
    assert frames[0].frame is child
    assert discover_payment_frame(surface).url == "https://js.stripe.com/v3"
