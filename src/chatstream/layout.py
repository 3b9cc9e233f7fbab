"""Concrete implementations for layout builders."""

from abc import ABC, abstractmethod
from typing import List, Sequence

import dash_bootstrap_components as dbc
from dash import dcc, html
from dash.development.base_component import Component as DashComponent

from .models import USER_ROLE, ChatMessage, ModelInfo


class Layout(ABC):
    """Interface for building the Dash component layout.

    Implementations must provide the component IDs the callbacks use:
    ``messages_container``, ``input_textarea``, ``submit_button``,
    ``new_conversation_button``, ``model_dropdown``, ``token_count`` and
    ``status_indicator``. User messages rendered by :meth:`build_messages`
    carry an ``{"type": "edit-message", "index": i}`` button.
    """

    @abstractmethod
    def build_layout(self, models: Sequence[ModelInfo], selected_model: str) -> DashComponent:
        """Constructs and returns the entire Dash component tree for the UI."""
        pass

    @abstractmethod
    def build_messages(self, messages: Sequence[ChatMessage]) -> List[DashComponent]:
        """Converts transcript messages into renderable Dash components."""
        pass

    def get_external_stylesheets(self) -> List[str]:
        return []

    def get_external_scripts(self) -> List[str]:
        return []


def format_token_count(count: int) -> str:
    return f"{count} token" if count == 1 else f"{count} tokens"


class Bootstrap(Layout):
    """Builds the default layout with Dash Bootstrap Components."""

    def get_external_stylesheets(self) -> List[str]:
        return [dbc.themes.BOOTSTRAP, dbc.icons.BOOTSTRAP]

    def build_layout(self, models, selected_model) -> DashComponent:
        return html.Div(
            className="d-flex flex-column vh-100",
            children=[
                self.build_header(models, selected_model),
                self.build_chat_area(),
                self.build_input_area(),
            ],
        )

    def build_header(self, models: Sequence[ModelInfo], selected_model: str) -> DashComponent:
        options = [{"label": model.label, "value": model.id} for model in models]
        if selected_model not in {model.id for model in models}:
            options.insert(0, {"label": selected_model, "value": selected_model})
        return html.Header(
            className="p-2 bg-light border-bottom",
            children=[
                dbc.Container(
                    fluid=True,
                    children=[
                        dbc.Row(
                            align="center",
                            children=[
                                dbc.Col(html.H4("Chatstream", className="m-0"), width="auto"),
                                dbc.Col(
                                    dcc.Dropdown(
                                        id="model_dropdown",
                                        options=options,
                                        value=selected_model,
                                        clearable=False,
                                    )
                                ),
                                dbc.Col(
                                    dbc.Badge(
                                        format_token_count(0),
                                        id="token_count",
                                        color="secondary",
                                    ),
                                    width="auto",
                                ),
                                dbc.Col(
                                    dbc.Button(
                                        "New Chat",
                                        id="new_conversation_button",
                                        color="primary",
                                        n_clicks=0,
                                    ),
                                    width="auto",
                                ),
                            ],
                        )
                    ],
                )
            ],
        )

    def build_chat_area(self) -> DashComponent:
        return html.Main(
            className="flex-grow-1 p-3",
            style={"overflowY": "auto"},
            children=[
                html.Div(id="messages_container", children=[]),
                html.Div(
                    dbc.Spinner(size="sm"),
                    id="status_indicator",
                    hidden=True,
                ),
            ],
        )

    def build_input_area(self) -> DashComponent:
        return html.Footer(
            className="p-3 bg-light border-top",
            children=[
                dbc.InputGroup(
                    [
                        dbc.Textarea(id="input_textarea", placeholder="Type a message..."),
                        dbc.Button("Send", id="submit_button", color="primary", n_clicks=0),
                    ]
                )
            ],
        )

    def build_messages(self, messages) -> List[DashComponent]:
        if not messages:
            return []
        return [self.build_message(index, msg) for index, msg in enumerate(messages)]

    def build_message(self, index: int, message: ChatMessage) -> DashComponent:
        """Formats a single message. User messages get an edit button."""
        style = {
            "padding": "10px",
            "borderRadius": "15px",
            "marginBottom": "10px",
            "maxWidth": "70%",
            "width": "fit-content",
        }
        children = [dcc.Markdown(message.content)]
        if message.role == USER_ROLE:
            style["marginLeft"] = "auto"
            style["backgroundColor"] = "#dcf8c6"
            children.append(
                dbc.Button(
                    html.I(className="bi bi-pencil"),
                    id={"type": "edit-message", "index": index},
                    color="link",
                    size="sm",
                    n_clicks=0,
                )
            )
        else:
            style["marginRight"] = "auto"
            style["backgroundColor"] = "#ffffff"
            style["border"] = "1px solid #eee"

        return html.Div(children, style=style)
