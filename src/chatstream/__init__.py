"""
The main entrypoint for the Chatstream package.

This module contains the Chatstream application class. Its collaborators (the
transport, the model catalog, the tokenizer, the layout and the engine) are
pillars defined in their own modules as abstract base classes with concrete
defaults, and can be replaced by injection.
"""

from typing import Optional

from dash import Dash

from . import catalog, engine, layout, llm, tokenizer
from .config import Settings
from .context import Context
from .runner import LoopThread
from .store import Transcript


class Chatstream(Dash):
    """
    A streaming chat client for OpenAI-compatible completion APIs.

    The application owns a :class:`~chatstream.context.Context` holding the
    transcript and the selected model, and a streaming engine that writes
    assistant replies into it. The Dash layer only renders that state.
    Callbacks submit every engine call to ``runner``, a single background
    event loop, so a New Chat click can cancel a reply that is still
    streaming.
    """

    def __init__(
        self,
        layout: Optional["layout.Layout"] = None,
        llm: Optional["llm.LLM"] = None,
        catalog: Optional["catalog.Catalog"] = None,
        tokenizer: Optional["tokenizer.Tokenizer"] = None,
        engine: Optional["engine.Engine"] = None,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> None:
        """
        Initialize the application with configurable pillars.

        Parameters
        ----------
        layout : layout.Layout, optional
            Layout builder for the Dash component tree. Defaults to
            layout.Bootstrap().
        llm : llm.LLM, optional
            Chat completion transport. Defaults to llm.OpenRouter() when an API
            key is configured, llm.Simulated() otherwise.
        catalog : catalog.Catalog, optional
            Source of selectable models. Defaults to catalog.OpenRouter(), which
            falls back to the built-in models.
        tokenizer : tokenizer.Tokenizer, optional
            Tokenizer for the token estimate. Defaults to tokenizer.Tiktoken().
        engine : engine.Engine, optional
            Conversation engine. Defaults to engine.Streaming(). An engine
            created without a context is bound to the application's context.
        settings : Settings, optional
            Configuration. Defaults to Settings.from_env().
        **kwargs
            Additional arguments passed to the Dash constructor.

        Examples
        --------
        >>> app = Chatstream()
        >>> app.run(debug=True)

        Offline, with the simulated transport:

        >>> app = Chatstream(llm=llm.Simulated(delay=0.05))
        """
        layout_module = globals()["layout"]
        catalog_module = globals()["catalog"]
        engine_module = globals()["engine"]

        self.settings = settings if settings is not None else Settings.from_env()
        self.layout_builder = layout if layout is not None else layout_module.Bootstrap()
        self.catalog = (
            catalog
            if catalog is not None
            else catalog_module.OpenRouter(self.settings.api_key, self.settings.base_url)
        )
        self.context = Context(
            settings=self.settings,
            llm=llm,
            tokenizer=tokenizer,
            transcript=Transcript(),
        )

        self.engine = engine if engine is not None else engine_module.Streaming()
        if self.engine.context is None:
            self.engine.context = self.context
        self.runner = LoopThread()

        if "external_stylesheets" not in kwargs:
            kwargs["external_stylesheets"] = []
        kwargs["external_stylesheets"].extend(
            self.layout_builder.get_external_stylesheets()
        )

        if "external_scripts" not in kwargs:
            kwargs["external_scripts"] = []
        kwargs["external_scripts"].extend(self.layout_builder.get_external_scripts())

        super().__init__(**kwargs)

        self.layout = self.serve_layout
        self._register_callbacks()

    @property
    def llm(self) -> "llm.LLM":
        return self.context.llm

    def serve_layout(self):
        """Builds the page on each load, so the model list is fetched fresh."""
        return self.layout_builder.build_layout(
            self.catalog.list_models(), self.context.model
        )

    def _register_callbacks(self) -> None:
        """Registers all the callbacks that orchestrate the pillars."""
        from .callbacks import register_callbacks

        register_callbacks(self)
