from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out
    """

    bubble = True


class CollectionChangedMessage(Message):
    """
    Posted by the app to the active screen when the projection received a new
    snapshot of a collection. Does not bubble back to the app.
    """

    bubble = False

    def __init__(self, collection: str) -> None:
        super().__init__()
        self.collection = collection


class ProfileChangedMessage(Message):
    """The logged-in user's stored profile (wallets) changed."""

    bubble = False
