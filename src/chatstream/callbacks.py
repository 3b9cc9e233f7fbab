"""Dash callbacks wiring the layout to the streaming engine.

Callbacks run on Dash's worker threads. Every engine call and transcript
read goes through ``app.runner`` so that it executes on the engine's single
event loop.
"""

from dash import ALL, Input, Output, State, callback_context, no_update

from .errors import IndexOutOfRange
from .layout import format_token_count


def register_callbacks(app):
    def snapshot():
        return app.context.transcript.messages, app.engine.token_count

    def render():
        messages, count = app.runner.call(snapshot)
        return app.layout_builder.build_messages(messages), format_token_count(count)

    def edit_when_idle(index):
        if app.engine.is_streaming:
            return None
        return app.engine.edit(index)

    def choose_model(model_id):
        app.engine.select_model(model_id)
        return app.engine.token_count

    @app.callback(
        [
            Output("messages_container", "children"),
            Output("input_textarea", "value"),
            Output("token_count", "children"),
        ],
        [Input("submit_button", "n_clicks")],
        [State("input_textarea", "value")],
        running=[
            (Output("submit_button", "disabled"), True, False),
            (Output("status_indicator", "hidden"), False, True),
        ],
        prevent_initial_call=True,
    )
    def send_message(n_clicks, user_input):
        if not n_clicks or not user_input or not user_input.strip():
            return no_update, no_update, no_update

        # Failures are recorded in the transcript by the engine.
        app.runner.run(app.engine.send(user_input.strip()))
        messages, tokens = render()
        return messages, "", tokens

    @app.callback(
        [
            Output("messages_container", "children", allow_duplicate=True),
            Output("input_textarea", "value", allow_duplicate=True),
            Output("token_count", "children", allow_duplicate=True),
        ],
        [Input("new_conversation_button", "n_clicks")],
        prevent_initial_call=True,
    )
    def new_chat(n_clicks):
        if not n_clicks:
            return no_update, no_update, no_update

        # Cancels a reply that is still streaming.
        app.runner.run(app.engine.new_chat())
        messages, tokens = render()
        return messages, "", tokens

    @app.callback(
        [
            Output("messages_container", "children", allow_duplicate=True),
            Output("input_textarea", "value", allow_duplicate=True),
            Output("token_count", "children", allow_duplicate=True),
        ],
        [Input({"type": "edit-message", "index": ALL}, "n_clicks")],
        prevent_initial_call=True,
    )
    def edit_message(n_clicks):
        if not any(n_clicks):
            return no_update, no_update, no_update

        index = callback_context.triggered_id["index"]
        try:
            text = app.runner.call(edit_when_idle, index)
        except (IndexOutOfRange, ValueError):
            # Stale button from an earlier render.
            return no_update, no_update, no_update
        if text is None:
            return no_update, no_update, no_update
        messages, tokens = render()
        return messages, text, tokens

    @app.callback(
        Output("token_count", "children", allow_duplicate=True),
        [Input("model_dropdown", "value")],
        prevent_initial_call=True,
    )
    def select_model(model_id):
        if not model_id:
            return no_update
        return format_token_count(app.runner.call(choose_model, model_id))
