"""End-to-end preview runs against fake generators, views, and timers."""

from pathlib import Path

from orgview.config import PreviewConfig
from orgview.generators import GenerationError, MarkdownGenerator
from orgview.orchestrator import build_url

SLIDES_HTML = '<div class="slides"><section id="sec-1"><h2>Intro</h2><p>hi</p></section></div>'


def _slides_generator(html_text, calls=None):
    def generate(document):
        if calls is not None:
            calls.append(document)
        output = document.path.with_suffix(".html")
        output.write_text(html_text, encoding="utf-8")
        return output

    return generate


def _slides_document(make_document):
    document = make_document("Slides.org", "#+TITLE: Deck\n* Intro\nWelcome.\n", generator_name="slides")
    document.cursor_line = 2
    return document


class TestScenarios:
    def test_slides_open_at_current_heading(self, make_orchestrator, registry, make_document, view_widget):
        registry.register("slides", _slides_generator(SLIDES_HTML), presentation=True)
        orchestrator = make_orchestrator()
        document = _slides_document(make_document)

        url = orchestrator.run(document)

        expected_base = document.path.with_suffix(".html").resolve().as_uri()
        assert url == expected_base + "#sec-1"
        assert url.startswith("file:///") and url.endswith("/Slides.html#sec-1")
        assert view_widget.calls_named("new_session")[0][2] == url

    def test_renamed_heading_shows_top_of_document(self, make_orchestrator, registry, make_document):
        renamed = SLIDES_HTML.replace("Intro", "Introduction")
        registry.register("slides", _slides_generator(renamed), presentation=True)
        document = _slides_document(make_document)

        url = make_orchestrator().run(document)

        assert url == document.path.with_suffix(".html").resolve().as_uri()
        assert "#" not in url

    def test_unregistered_generator_falls_back_to_identity(self, make_orchestrator, make_document, reports):
        document = make_document("page.org", "* A\n", generator_name="latex")

        url = make_orchestrator().run(document)

        assert url == document.path.resolve().as_uri()
        assert reports and "no generator for latex" in reports[0]

    def test_unknown_suffix_uses_identity_silently(self, make_orchestrator, make_document, reports):
        document = make_document("page.xhtml", "<p>hi</p>")
        assert make_orchestrator().run(document) == document.path.resolve().as_uri()
        assert reports == []

    def test_from_top_skips_fragment(self, make_orchestrator, registry, make_document):
        registry.register("slides", _slides_generator(SLIDES_HTML), presentation=True)
        document = _slides_document(make_document)
        url = make_orchestrator().preview(document, from_top=True)
        assert "#" not in url


class TestGenerationFailure:
    def test_failure_is_reported_and_nothing_is_displayed(
        self, make_orchestrator, registry, make_document, view_widget, reports
    ):
        def failing(document):
            raise GenerationError("pandoc failed: parse error")

        registry.register("html", failing)
        document = make_document("a.org", "* A\n")

        assert make_orchestrator().run(document) is None
        assert view_widget.calls == []
        assert len(reports) == 1
        assert "parse error" in reports[0]

    def test_missing_output_counts_as_failure(self, make_orchestrator, registry, make_document, view_widget, reports):
        registry.register("html", lambda document: document.path.with_suffix(".html"))
        document = make_document("a.org", "* A\n")
        assert make_orchestrator().run(document) is None
        assert view_widget.calls == []
        assert "does not exist" in reports[0]

    def test_unexpected_generator_error_is_reported(
        self, make_orchestrator, registry, make_document, view_widget, reports
    ):
        def crashing(document):
            raise ValueError("exporter crashed")

        registry.register("html", crashing)
        document = make_document("a.org", "* A\n")

        assert make_orchestrator().run(document) is None
        assert view_widget.calls == []
        assert reports == ["Preview generation failed (html): exporter crashed"]

    def test_generator_returning_nothing_is_reported(self, make_orchestrator, registry, make_document, reports):
        registry.register("html", lambda document: None)
        document = make_document("a.org", "* A\n")
        assert make_orchestrator().run(document) is None
        assert len(reports) == 1
        assert reports[0].startswith("Preview generation failed (html):")

    def test_html_source_is_never_overwritten(self, make_orchestrator, registry, make_document):
        registry.register("markdown", MarkdownGenerator())
        original = "<html><body><h1>Hand written</h1></body></html>"
        document = make_document("page.html", original)

        url = make_orchestrator(PreviewConfig(generator_name="markdown")).run(document)

        assert document.path.read_text(encoding="utf-8") == original
        assert url == (document.path.parent / "page.preview.html").resolve().as_uri()

    def test_next_run_after_failure_still_works(self, make_orchestrator, registry, make_document, view_widget):
        outcomes = [GenerationError("boom"), None]

        def flaky(document):
            outcome = outcomes.pop(0)
            if outcome is not None:
                raise outcome
            return _slides_generator("<p>ok</p>")(document)

        registry.register("html", flaky)
        orchestrator = make_orchestrator()
        document = make_document("a.org", "* A\n")
        assert orchestrator.run(document) is None
        assert orchestrator.run(document) is not None
        assert len(view_widget.calls_named("new_session")) == 1


class TestSessionSharing:
    def test_consecutive_runs_reuse_one_view(self, make_orchestrator, registry, make_document, view_widget):
        registry.register("slides", _slides_generator(SLIDES_HTML), presentation=True)
        orchestrator = make_orchestrator()
        document = _slides_document(make_document)

        orchestrator.run(document)
        orchestrator.run(document)

        assert len(view_widget.calls_named("new_session")) == 1
        # Same page and same fragment: reload goes through the blank page.
        assert [call[2] for call in view_widget.calls_named("navigate")][0] == "about:blank"

    def test_documents_share_the_preview_identity(self, make_orchestrator, make_document, view_widget, viewer):
        orchestrator = make_orchestrator()
        first = make_document("a.html", "<p>a</p>")
        second = make_document("b.html", "<p>b</p>")

        orchestrator.run(first)
        orchestrator.run(second)

        assert len(view_widget.calls_named("new_session")) == 1
        assert viewer.active.source is second
        assert viewer.active.url == second.path.resolve().as_uri()

    def test_presentation_flag_follows_resolved_generator(
        self, make_orchestrator, registry, make_document, view_widget, viewer
    ):
        registry.register("slides", _slides_generator(SLIDES_HTML), presentation=True)
        document = _slides_document(make_document)
        make_orchestrator().run(document)
        view_widget.finish_load(viewer.active.handle)
        assert viewer.active.navigation_assist is True


class TestTriggers:
    def test_idle_delay_unset_means_save_only(self, make_orchestrator, registry, make_document, scheduler):
        calls = []
        registry.register("html", _slides_generator("<p>x</p>", calls))
        orchestrator = make_orchestrator(PreviewConfig(after_change_idle_delay=None))
        document = make_document("a.org", "* A\n")
        orchestrator.enable(document)

        for _ in range(3):
            orchestrator.on_change(document)
        scheduler.advance(3600)
        assert calls == []

        orchestrator.on_save(document)
        assert calls == [document]

    def test_typing_regenerates_once_after_idle(self, make_orchestrator, registry, make_document, scheduler):
        calls = []
        registry.register("html", _slides_generator("<p>x</p>", calls))
        orchestrator = make_orchestrator(PreviewConfig(after_change_idle_delay=0.5))
        document = make_document("a.org", "* A\n")
        orchestrator.enable(document)

        orchestrator.on_change(document)
        scheduler.advance(0.25)
        orchestrator.on_change(document)
        scheduler.advance(0.25)
        assert calls == []
        scheduler.advance(0.25)
        assert calls == [document]

    def test_save_cancels_pending_idle_run(self, make_orchestrator, registry, make_document, scheduler):
        calls = []
        registry.register("html", _slides_generator("<p>x</p>", calls))
        orchestrator = make_orchestrator(PreviewConfig(after_change_idle_delay=1.0))
        document = make_document("a.org", "* A\n")
        orchestrator.enable(document)

        orchestrator.on_change(document)
        orchestrator.on_save(document)
        scheduler.advance(5)
        assert calls == [document]

    def test_disable_stops_live_regeneration(self, make_orchestrator, registry, make_document, scheduler):
        calls = []
        registry.register("html", _slides_generator("<p>x</p>", calls))
        orchestrator = make_orchestrator(PreviewConfig(after_change_idle_delay=1.0))
        document = make_document("a.org", "* A\n")
        orchestrator.enable(document)
        orchestrator.on_change(document)
        orchestrator.disable(document)
        scheduler.advance(5)
        assert calls == []


class TestBuildUrl:
    def test_fragment_is_appended(self, tmp_path):
        output = tmp_path / "a.html"
        assert build_url(output, "sec-1") == Path(output).resolve().as_uri() + "#sec-1"

    def test_fragment_is_quoted(self, tmp_path):
        assert build_url(tmp_path / "a.html", "a b").endswith("#a%20b")
