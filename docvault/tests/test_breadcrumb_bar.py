from docvault.components.breadcrumb_bar import BreadcrumbBar
from docvault.services.navigation import Breadcrumb


def test_trail_buttons_emit_accumulated_paths(qtbot):
    bar = BreadcrumbBar()
    qtbot.addWidget(bar)
    bar.set_trail([Breadcrumb("Docs", "/Docs"), Breadcrumb("Reports", "/Docs/Reports")])

    assert bar.labels() == ["Home", "Docs", "Reports"]

    clicked = []
    bar.segment_clicked.connect(clicked.append)
    bar.buttons[1].click()
    bar.buttons[0].click()

    assert clicked == ["/Docs", "/"]


def test_empty_trail_has_only_home(qtbot):
    bar = BreadcrumbBar()
    qtbot.addWidget(bar)
    bar.set_trail([])
    assert bar.labels() == ["Home"]
