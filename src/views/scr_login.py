from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, QuitDialogModal


class LoginScreen(BaseScreen):
    """
    Password login, sign-up and federated login. Dismisses once a session is
    active. With require_admin only admin accounts get through and sign-up is
    not offered.
    """

    def __init__(self, require_admin: bool = False):
        super().__init__(show_sidebar=False)
        self.require_admin = require_admin

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Admin login" if self.require_admin else "Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Username")
                    yield Input(placeholder="username", id="input-login-user")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        if not self.require_admin:
                            yield Button("Google Login", id="btn-google")
                        yield Button("Login", id="btn-login", variant="primary")

            if not self.require_admin:
                with TabPane("Sign up", id="tab-signup"):
                    with Vertical(id="div-reg"):
                        yield Label("Username")
                        yield Input(placeholder="jane", id="input-reg-user")
                        yield Label("Email")
                        yield Input(placeholder="user@example.com", id="input-reg-email")
                        yield Label("Password")
                        yield Input(
                            placeholder="*********", password=True, id="input-reg-pwd"
                        )
                        yield Label("Confirm password")
                        yield Input(
                            placeholder="*********", password=True, id="input-reg-pwd2"
                        )
                        yield Label("Referral code (optional)")
                        yield Input(placeholder="ALICE42", id="input-reg-ref")
                        with Horizontal(id="div-reg-btns"):
                            yield Button("Register", id="btn-reg", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-user").focus()

    def on_key(self, event: Key) -> None:
        if event.key != "enter":
            return
        if self.focused and self.focused.id == "input-login-pwd":
            self.handle_login_submit()
        elif self.focused and self.focused.id == "input-reg-ref":
            self.handle_registration_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        username = self.query_one("#input-login-user", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        if not username or not pwd:
            self.notify("Username or password cannot be empty!", severity="error")
            return

        result = await self.app.state.sessions.login(
            username, pwd, require_admin=self.require_admin
        )
        if result:
            self.notify(f"Hello {result.value.username}!")
            self.dismiss()
        else:
            self.notify(result.message, severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-google")
    @work(exclusive=True)
    async def handle_google_login(self) -> None:
        result = await self.app.state.sessions.login_with_google()
        if result:
            self.notify(result.message)
            self.dismiss()
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        username = self.query_one("#input-reg-user", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value
        pwd2 = self.query_one("#input-reg-pwd2", Input).value
        ref_code = self.query_one("#input-reg-ref", Input).value.strip()

        if not username or not email or not pwd:
            self.notify("Make sure all inputs are filled.", severity="error")
            return
        if pwd != pwd2:
            self.notify("Passwords do not match.", severity="error")
            self.query_one("#input-reg-pwd2", Input).add_class("-invalid")
            return

        result = await self.app.state.sessions.register(
            username, pwd, email=email, ref_code=ref_code or None
        )
        if not result:
            self.notify(result.message, severity="error")
            return

        await self.app.push_screen_wait(
            DialogModal(
                f"{result.message} Your referral code is {result.value.ref_code}.",
            )
        )
        self.get_child_by_type(TabbedContent).active = "tab-login"
        self.query_one("#input-login-user", Input).value = username
        self.query_one("#input-login-pwd", Input).focus()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
