from collections.abc import MutableMapping


class MultiDict(MutableMapping):
    """
    A mapping that keeps every (key, value) pair it is given, in order.

    `fields` holds the raw pairs. Keys are compared after `_kconv`, and
    `md[key]` combines all values of a key with `_reduce_values`.
    Subclasses override both to get e.g. case-insensitive, folded HTTP headers.
    """

    fields: tuple

    def __init__(self, fields=()):
        self.fields = tuple((k, v) for k, v in fields)

    @staticmethod
    def _kconv(key):
        return key

    @staticmethod
    def _reduce_values(values):
        return values[0]

    def _matches(self, key):
        key = self._kconv(key)
        return lambda field: self._kconv(field[0]) == key

    def __repr__(self):
        return f"{type(self).__name__}[{', '.join(map(repr, self.fields))}]"

    def __eq__(self, other):
        return isinstance(other, MultiDict) and self.fields == other.fields

    def __len__(self):
        return len({self._kconv(k) for k, _ in self.fields})

    def __iter__(self):
        # first spelling of each key wins
        first = {}
        for k, _ in self.fields:
            first.setdefault(self._kconv(k), k)
        return iter(first.values())

    def __getitem__(self, key):
        values = self.get_all(key)
        if not values:
            raise KeyError(key)
        return self._reduce_values(values)

    def __setitem__(self, key, value):
        self.set_all(key, [value])

    def __delitem__(self, key):
        match = self._matches(key)
        remaining = tuple(f for f in self.fields if not match(f))
        if len(remaining) == len(self.fields):
            raise KeyError(key)
        self.fields = remaining

    def get_all(self, key):
        """
        All values of a key, in order. Empty if the key is missing.
        """
        match = self._matches(key)
        return [v for k, v in self.fields if match((k, v))]

    def set_all(self, key, values):
        """
        Replace the values of a key. Existing fields are overwritten in place,
        surplus fields are dropped and extra values are appended.
        """
        match = self._matches(key)
        values = iter(values)
        fields = []
        for f in self.fields:
            if not match(f):
                fields.append(f)
                continue
            try:
                fields.append((f[0], next(values)))
            except StopIteration:
                pass
        fields.extend((key, v) for v in values)
        self.fields = tuple(fields)

    def add(self, key, value):
        """
        Append another value for a key.
        """
        self.fields += ((key, value),)
